import logging

from flask import Blueprint, current_app, jsonify, request
from flask_login import LoginManager, current_user, login_required, login_user, logout_user
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from errors import EmailError, ValidationError
from mailer import send_email
from models import db, User, hash_token, normalize_email, require_fields, utcnow

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/v1/auth')
login_manager = LoginManager()

FORGOT_PASSWORD_MESSAGE = 'If an account with that email exists, a reset link has been sent'


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt='auth-token')


def generate_token(user):
    return _serializer().dumps({'id': user.id})


def user_from_token(token):
    try:
        payload = _serializer().loads(token, max_age=current_app.config['TOKEN_MAX_AGE'])
    except (SignatureExpired, BadSignature):
        return None
    return db.session.get(User, payload.get('id'))


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.request_loader
def load_user_from_request(req):
    header = req.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return user_from_token(header[len('Bearer '):].strip())
    return None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify(message='Not authorized'), 401


def _auth_response(user, status=200):
    return jsonify(data=user.to_dict(), token=generate_token(user)), status


# Routes - Authentication
@auth_bp.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    require_fields(data, ('name', 'email', 'password'))

    email = normalize_email(data['email'])
    if User.query.filter_by(email=email).first():
        return jsonify(message='User already exists'), 400

    user = User(name=data['name'], email=email)
    user.set_password(data['password'])
    db.session.add(user)
    db.session.commit()
    logger.info("Registered user %s", user.id)
    return _auth_response(user, 201)


@auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    email = data.get('email')
    password = data.get('password')
    if not isinstance(email, str) or not isinstance(password, str) or not email.strip() or not password:
        return jsonify(message='Please provide email and password'), 400
    email = normalize_email(email)

    user = User.query.filter_by(email=email).first()
    if user is None or not user.check_password(password):
        return jsonify(message='Invalid email or password'), 401

    login_user(user)
    return _auth_response(user)


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify(message='Logged out successfully')


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify(data=current_user.to_dict())


@auth_bp.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    data = request.get_json(silent=True) or {}
    user = current_user

    if data.get('email'):
        email = normalize_email(data['email'])
        taken = User.query.filter(User.email == email, User.id != user.id).first()
        if taken:
            return jsonify(message='Email already in use'), 400
        user.email = email
    if data.get('name'):
        user.name = data['name']
    if data.get('password'):
        user.set_password(data['password'])

    db.session.commit()
    return _auth_response(user)


@auth_bp.route('/forgotpassword', methods=['POST'])
def forgot_password():
    data = request.get_json(silent=True) or {}
    email = data.get('email')
    if not isinstance(email, str) or not email.strip():
        raise ValidationError({'email': 'Please provide an email'})
    email = normalize_email(email)

    user = User.query.filter_by(email=email).first()
    if user is None:
        # same answer as the success path so addresses can't be enumerated
        return jsonify(message=FORGOT_PASSWORD_MESSAGE)

    raw_token = user.get_reset_password_token(current_app.config['RESET_TOKEN_TTL_MINUTES'])
    db.session.commit()

    reset_url = f"{current_app.config['FRONTEND_URL'].rstrip('/')}/reset-password/{raw_token}"
    try:
        send_email(
            email=user.email,
            subject='Password reset token',
            message=('You are receiving this email because you (or someone else) requested '
                     f'a password reset. Open this link to continue:\n\n{reset_url}'),
            reset_url=reset_url,
        )
    except EmailError:
        logger.exception("Password reset email failed for user %s", user.id)
        user.clear_reset_token()
        db.session.commit()
        return jsonify(message='Email could not be sent'), 500

    return jsonify(message=FORGOT_PASSWORD_MESSAGE)


@auth_bp.route('/resetpassword/<token>', methods=['PUT'])
def reset_password(token):
    data = request.get_json(silent=True) or {}
    user = User.query.filter(
        User.reset_password_token == hash_token(token),
        User.reset_password_expire > utcnow(),
    ).first()
    if user is None:
        return jsonify(message='Invalid or expired token'), 400

    user.set_password(data.get('password'))
    user.clear_reset_token()
    db.session.commit()
    logger.info("Password reset for user %s", user.id)
    return _auth_response(user)
