# backoffice/routes/api.py

"""
Serverless HTTP adapters: batch account creation, account deletion and the
contact-form relay.
"""

from flask import Blueprint, current_app, jsonify, request
from email_validator import EmailNotValidError, validate_email

from backoffice.importer.metrics import record_adapter_request
from backoffice.services.identity import IdentityProvider
from backoffice.services.mailer import ContactMessage, SmtpMailer, SmtpSettings, build_contact_email

api_bp = Blueprint("api", __name__, url_prefix="/api")

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


@api_bp.after_request
def add_cors_headers(response):
    response.headers.update(CORS_HEADERS)
    return response


def _respond(endpoint, payload, status=200):
    record_adapter_request(endpoint, status)
    return jsonify(payload), status


def _preflight_or_reject(endpoint):
    """Return a response for OPTIONS and non-POST requests, ``None`` for POST."""
    if request.method == "OPTIONS":
        record_adapter_request(endpoint, 200)
        return "", 200
    if request.method != "POST":
        return _respond(endpoint, {"error": "Method not allowed"}, 405)
    return None


def _identity_provider():
    provider = current_app.extensions.get("identity_provider")
    if provider is None:
        provider = IdentityProvider.from_settings(current_app.config)
        current_app.extensions["identity_provider"] = provider
    return provider


def _mailer():
    mailer = current_app.extensions.get("mailer")
    if mailer is not None:
        return mailer
    settings = SmtpSettings.from_mapping(current_app.config)
    if settings is None:
        return None
    return SmtpMailer(settings)


def _verify_admin_token(provider, token):
    """A failed verification is logged and the request carries on."""
    if not token:
        return
    try:
        decoded = provider.verify_token(token)
        current_app.logger.info("Adapter request from user %s", decoded.get("uid"))
    except Exception as exc:
        current_app.logger.warning("Token verification failed: %s", exc)


def _create_one(provider, user, password):
    email = user.get("email")
    unique_id = user.get("uniqueId")
    if not email or not unique_id:
        return {"uniqueId": unique_id or "unknown", "success": False, "error": "Missing email or uniqueId"}

    try:
        existing = provider.find_by_email(email)
        if existing is not None:
            return {
                "uniqueId": unique_id,
                "success": False,
                "error": "User with this email already exists",
                "uid": existing.uid,
            }
        uid = provider.create_account(email=email, password=password, display_name=user.get("name") or unique_id)
    except Exception as exc:
        current_app.logger.error("Error creating account for %s: %s", email, exc)
        return {"uniqueId": unique_id, "success": False, "error": str(exc)}

    current_app.logger.info("Created account %s (%s)", email, uid)
    return {"uniqueId": unique_id, "success": True, "uid": uid, "email": email}


@api_bp.route("/create-auth-users", methods=ALL_METHODS)
def create_auth_users():
    endpoint = "create-auth-users"
    early = _preflight_or_reject(endpoint)
    if early is not None:
        return early

    body = request.get_json(silent=True) or {}
    users = body.get("users")
    if not isinstance(users, list) or not users:
        return _respond(endpoint, {"error": "Invalid request: users array required"}, 400)

    try:
        provider = _identity_provider()
        _verify_admin_token(provider, body.get("adminToken"))
        password = current_app.config.get("DEFAULT_ACCOUNT_PASSWORD")
        results = [
            _create_one(provider, user if isinstance(user, dict) else {}, password) for user in users
        ]
    except Exception as exc:
        current_app.logger.error("Error in create-auth-users: %s", exc, exc_info=True)
        return _respond(endpoint, {"error": "Internal server error"}, 500)

    created = sum(1 for result in results if result["success"])
    return _respond(
        endpoint,
        {
            "success": True,
            "message": f"Created {created} users, {len(results) - created} failed",
            "results": results,
        },
    )


@api_bp.route("/delete-auth-user", methods=ALL_METHODS)
def delete_auth_user():
    endpoint = "delete-auth-user"
    early = _preflight_or_reject(endpoint)
    if early is not None:
        return early

    body = request.get_json(silent=True) or {}
    email = body.get("email")
    if not email:
        return _respond(endpoint, {"error": "Email is required"}, 400)

    try:
        provider = _identity_provider()
        _verify_admin_token(provider, body.get("adminToken"))
        record = provider.find_by_email(email)
        if record is None:
            return _respond(
                endpoint,
                {
                    "success": False,
                    "error": "User not found with this email",
                    "message": f"No account exists for {email}",
                },
                404,
            )
        provider.delete_account(record.uid)
    except Exception as exc:
        current_app.logger.error("Error deleting account %s: %s", email, exc, exc_info=True)
        return _respond(endpoint, {"success": False, "error": "Failed to delete user"}, 500)

    current_app.logger.info("Deleted account %s (%s)", email, record.uid)
    return _respond(
        endpoint,
        {"success": True, "message": f"User {email} deleted", "uid": record.uid},
    )


@api_bp.route("/send-email", methods=ALL_METHODS)
def send_email():
    endpoint = "send-email"
    early = _preflight_or_reject(endpoint)
    if early is not None:
        return early

    body = request.get_json(silent=True) or {}
    fields = {name: body.get(name) for name in ("name", "email", "category", "message")}
    if not all(fields.values()):
        return _respond(
            endpoint,
            {"error": "Missing required fields: name, email, category, and message are required"},
            400,
        )

    try:
        validate_email(str(fields["email"]), check_deliverability=False)
    except EmailNotValidError:
        return _respond(endpoint, {"error": "Invalid email format"}, 400)

    mailer = _mailer()
    if mailer is None:
        current_app.logger.error("SMTP configuration missing. Required: SMTP_HOST, SMTP_USER, SMTP_PASS")
        return _respond(
            endpoint,
            {"error": "Email service is not configured. Please contact the administrator."},
            500,
        )

    contact = ContactMessage(**{name: str(value) for name, value in fields.items()})
    try:
        mailer.send(build_contact_email(contact, mailer.settings))
    except Exception as exc:
        current_app.logger.error("Error sending contact email: %s", exc, exc_info=True)
        return _respond(endpoint, {"error": "Failed to send email. Please try again later."}, 500)

    return _respond(endpoint, {"success": True, "message": "Email sent successfully"})


def register_api_routes(app):
    """Register API routes"""
    app.register_blueprint(api_bp)
