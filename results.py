"""Uniform result objects returned by the data-access functions."""
from flask import flash


def ok(data=None, message=None):
    return {'success': True, 'data': data, 'message': message}


def fail(error):
    return {'success': False, 'error': error}


def flash_result(result):
    """Flash a result's message or error; returns whether it succeeded."""
    if result['success']:
        if result.get('message'):
            flash(result['message'], 'success')
    else:
        flash(result['error'], 'error')
    return result['success']
