from flask import request, session, jsonify, current_app, abort

from vetclinic import db
from vetclinic.auth import auth
from vetclinic.auth.models import User
from vetclinic.auth.decorators import login_required
from vetclinic.utils.request import json_body, text_field


@auth.route('/login', methods=['POST'])
def login():
    """
    Validate credentials (JSON body or form post), populate the session
    and return the logged-in user.
    """
    data = json_body() or request.form
    username = text_field(data, 'username')
    password = data.get('password')
    password = password if isinstance(password, str) else ''

    # Basic presence validation
    if not username or not password:
        abort(400, description='Username and password are required.')

    user = User.query.filter_by(username=username, is_active=True).first()
    if user is None or not user.check_password(password):
        # Deliberately vague — don't reveal which field was wrong
        current_app.logger.warning(f"Failed login attempt for username: {username}")
        abort(401, description='Invalid username or password.')

    # ── Populate session (minimal — only what's needed) ──
    session.clear()
    session['user_id'] = user.id
    session['role']    = user.role.value
    session.permanent  = True             # respect PERMANENT_SESSION_LIFETIME

    current_app.logger.info(f"User {user.username} logged in successfully.")
    return jsonify({'success': True, 'data': {'user': user.to_dict()}})


@auth.route('/logout', methods=['POST'])
def logout():
    """Clear the session."""
    session.clear()
    return jsonify({'success': True, 'message': 'Logged out.'})


@auth.route('/me')
@login_required
def me():
    """Return the user bound to the current session."""
    user = db.session.get(User, session['user_id'])
    if user is None:
        session.clear()
        abort(401, description='Session user no longer exists.')
    return jsonify({'success': True, 'data': {'user': user.to_dict()}})
