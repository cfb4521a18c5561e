"""
auth.py
-------
Handles user authentication for the grading system using Flask-Login on top of
Flask's signed cookie session. Provides credential checks, login/logout, the
sliding session expiry and the admin-only access-control wrapper.
"""

import time
from functools import wraps

from flask import current_app, redirect, render_template, session, url_for
from flask_login import LoginManager, UserMixin, current_user, login_required
from flask_login import login_user as _login_user, logout_user as _logout_user
from werkzeug.security import check_password_hash, generate_password_hash

login_manager = LoginManager()


class SessionUser(UserMixin):
    """The logged-in user as stored in the session: {id, userName, role}."""

    def __init__(self, data):
        self.id = data['id']
        self.user_name = data['userName']
        self.role = data['role']

    @property
    def is_admin(self):
        return self.role == 'ADMIN'

    def to_dict(self):
        return {'id': self.id, 'userName': self.user_name, 'role': self.role}


@login_manager.user_loader
def load_user(user_id):
    data = session.get('user')
    if not data or str(data.get('id')) != str(user_id):
        return None
    return SessionUser(data)


@login_manager.unauthorized_handler
def unauthorized():
    return redirect(url_for('login'))


def hash_password(password):
    return generate_password_hash(password)


def authenticate(store, user_name, password):
    """Return {id, userName, role} for valid, active credentials, else None."""
    user = store.get_user_by_name(user_name)
    if user is None or not user.active:
        return None
    if not check_password_hash(user.password_hash, password or ''):
        return None
    return {'id': user.id, 'userName': user.user_name, 'role': user.role}


# ------------------------------------------------------------
# Session handling
# ------------------------------------------------------------
def login_user(user):
    session.clear()
    session.permanent = True
    session['user'] = user
    session['expires_at'] = time.time() + current_app.config['SESSION_DURATION']
    _login_user(SessionUser(user))


def logout_user():
    _logout_user()
    session.clear()


def refresh_session():
    """
    Run before every request. Drops an expired session; when a session is close
    to expiring, activity extends it by SESSION_ACTIVE_DURATION.
    """
    if 'user' not in session:
        return
    now = time.time()
    expires_at = session.get('expires_at', 0)
    if expires_at <= now:
        current_app.logger.info(f"Session expired for {session['user'].get('userName')}")
        session.clear()
        return
    active_duration = current_app.config['SESSION_ACTIVE_DURATION']
    if expires_at - now < active_duration:
        session['expires_at'] = expires_at + active_duration


# ------------------------------------------------------------
# Access control
# ------------------------------------------------------------
def admin_required(view):
    @wraps(view)
    @login_required
    def wrapped(*args, **kwargs):
        if not current_user.is_admin:
            return render_template('500.html', message="Forbidden (Admin only)."), 403
        return view(*args, **kwargs)
    return wrapped
