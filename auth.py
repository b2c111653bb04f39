"""
Authentication blueprint: login/logout pages, the JSON auth API and the
route guards used by every other blueprint.

The signed session token travels in an HTTP-only ``auth_token`` cookie. It is
resolved once per request into ``g.current_user``; when the token turns out
to be invalid or expired the cookie is removed on the way out.
"""
from functools import wraps

from flask import (Blueprint, current_app, flash, g, jsonify, redirect, render_template, request,
                   url_for, abort)

import auth_service
from forms import LoginForm, RegisterUserForm
from security import csrf

auth_bp = Blueprint('auth', __name__)


def _wants_json():
    return request.path.startswith('/api/')


def set_auth_cookie(response, token, expires_at):
    response.set_cookie(
        current_app.config['AUTH_COOKIE_NAME'],
        token,
        expires=expires_at,
        httponly=True,
        secure=current_app.config['AUTH_COOKIE_SECURE'],
        samesite='Lax',
        path='/',
    )
    return response


def clear_auth_cookie(response):
    response.delete_cookie(current_app.config['AUTH_COOKIE_NAME'], path='/', httponly=True,
                           secure=current_app.config['AUTH_COOKIE_SECURE'], samesite='Lax')
    return response


@auth_bp.before_app_request
def load_current_user():
    token = request.cookies.get(current_app.config['AUTH_COOKIE_NAME'])
    user, clear_cookie = auth_service.get_current_user(token)
    g.current_user = user
    g.clear_auth_cookie = clear_cookie


@auth_bp.after_app_request
def drop_invalid_cookie(response):
    if g.get('clear_auth_cookie'):
        clear_auth_cookie(response)
    return response


# Route guards
def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('current_user') is None:
            if _wants_json():
                return jsonify({'error': 'Not authenticated'}), 401
            return redirect(url_for('auth.login', next=request.path))
        return f(*args, **kwargs)
    return decorated_function


def permission_required(permission):
    def decorator(f):
        @wraps(f)
        @login_required
        def decorated_function(*args, **kwargs):
            if not auth_service.has_permission(g.current_user, permission):
                current_app.logger.warning("User %s denied %s on %s", g.current_user.id, permission, request.path)
                if _wants_json():
                    return jsonify({'error': 'Forbidden'}), 403
                abort(403)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def user_types_allowed(*user_types):
    def decorator(f):
        @wraps(f)
        @login_required
        def decorated_function(*args, **kwargs):
            if g.current_user.user_type not in user_types:
                if _wants_json():
                    return jsonify({'error': 'Forbidden'}), 403
                abort(403)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def current_staff_id():
    """Staff id of the signed-in admin/staff user, used to stamp who recorded a change."""
    user = g.get('current_user')
    if user is not None and user.user_type in ('admin', 'staff'):
        return user.reference_id
    return None


def _safe_next(target):
    if target and target.startswith('/') and not target.startswith('//'):
        return target
    return None


def _home_for(user):
    if user.user_type in ('student', 'parent'):
        return url_for('report_cards.my_report_cards')
    return url_for('dashboard.index')


# Pages
@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    if g.get('current_user') is not None:
        return redirect(_home_for(g.current_user))

    form = LoginForm()
    if form.validate_on_submit():
        result = auth_service.login(form.email.data, form.password.data)
        if result['success']:
            data = result['data']
            flash(result['message'], 'success')
            target = _safe_next(request.args.get('next')) or _home_for(data['user'])
            response = redirect(target)
            g.clear_auth_cookie = False
            return set_auth_cookie(response, data['token'], data['expires_at'])
        flash(result['error'], 'error')

    return render_template('login.html', form=form)


@auth_bp.route('/logout')
def logout():
    token = request.cookies.get(current_app.config['AUTH_COOKIE_NAME'])
    auth_service.logout(token)
    flash('You have been logged out successfully!', 'info')
    return clear_auth_cookie(redirect(url_for('auth.login')))


@auth_bp.route('/register', methods=['GET', 'POST'])
@user_types_allowed('admin')
def register():
    form = RegisterUserForm()
    if form.validate_on_submit():
        result = auth_service.register(form.email.data, form.password.data,
                                       form.user_type.data, form.reference_id.data)
        if result['success']:
            flash(f"Account created for {result['data']['email']}", 'success')
            return redirect(url_for('auth.register'))
        flash(result['error'], 'error')
    return render_template('register.html', form=form)


# JSON API
@auth_bp.route('/api/auth/login', methods=['POST'])
@csrf.exempt
def api_login():
    payload = request.get_json(silent=True) or {}
    result = auth_service.login(payload.get('email'), payload.get('password'))
    if not result['success']:
        status = 400 if result['error'] == 'Email and password are required' else 401
        return jsonify({'success': False, 'error': result['error']}), status

    data = result['data']
    response = jsonify({'success': True, 'message': result['message'], 'user': data['user'].to_dict()})
    g.clear_auth_cookie = False
    return set_auth_cookie(response, data['token'], data['expires_at'])


@auth_bp.route('/api/auth/logout', methods=['POST'])
@csrf.exempt
def api_logout():
    token = request.cookies.get(current_app.config['AUTH_COOKIE_NAME'])
    result = auth_service.logout(token)
    response = jsonify({'success': result['success'], 'message': result.get('message')})
    return clear_auth_cookie(response)


@auth_bp.route('/api/auth/verify')
def api_verify():
    user = g.get('current_user')
    if user is None:
        return jsonify({'error': 'Not authenticated'}), 401
    return jsonify({'authenticated': True, 'user': user.to_dict()})
