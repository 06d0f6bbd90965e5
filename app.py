import os
import enum
from datetime import timedelta
from flask import Flask
from dotenv import load_dotenv
from flask.json.provider import DefaultJSONProvider

from extensions import db, jwt, migrate, limiter
from admin.api import admin_api_bp
from scanning.activation import init_activator

# models must be imported before create_all / migrations see the metadata
import scanning.models  # noqa: F401
import admin.models  # noqa: F401

load_dotenv()

class EnumJSONProvider(DefaultJSONProvider):
    def default(self, o):
        if isinstance(o, enum.Enum):
            return o.value
        return super().default(o)

def create_app(test_config=None, activator=None):
    app = Flask(__name__, instance_relative_config=True)

    app.config.from_mapping(
        SECRET_KEY=os.getenv('SECRET_KEY', 'dev'),
        JWT_SECRET_KEY=os.getenv('JWT_SECRET_KEY', os.getenv('SECRET_KEY', 'dev')),
        SQLALCHEMY_DATABASE_URI=os.getenv(
            'DATABASE_URL', f"sqlite:///{os.path.join(app.instance_path, 'app.db')}"
        ),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,

        JWT_ACCESS_TOKEN_EXPIRES=timedelta(hours=8),
        JWT_TOKEN_LOCATION=["headers", "cookies"],
        JWT_COOKIE_SECURE=os.getenv('JWT_COOKIE_SECURE', '1') == '1',
        JWT_COOKIE_SAMESITE="Lax",
        JWT_COOKIE_CSRF_PROTECT=True,

        ADMIN_READ_SCOPE=os.getenv('ADMIN_READ_SCOPE', 'scans.read'),
        ADMIN_REVIEW_SCOPE=os.getenv('ADMIN_REVIEW_SCOPE', 'scans.review'),

        EXTENSION_ACTIVATION_URL=os.getenv('EXTENSION_ACTIVATION_URL'),
        EXTENSION_ACTIVATION_TIMEOUT=float(os.getenv('EXTENSION_ACTIVATION_TIMEOUT', '5')),
        EXTENSION_ACTIVATION_TOKEN=os.getenv('EXTENSION_ACTIVATION_TOKEN'),

        RATELIMIT_ENABLED=os.getenv('RATELIMIT_ENABLED', '1') == '1',
        RATELIMIT_HEADERS_ENABLED=True,
    )
    if test_config is not None:
        app.config.update(test_config)

    os.makedirs(app.instance_path, exist_ok=True)

    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    app.json_provider_class = EnumJSONProvider
    app.json = app.json_provider_class(app)

    init_activator(app, activator)

    app.register_blueprint(admin_api_bp)

    app.logger.info(
        "[app] admin API ready (activation %s)",
        "configured" if app.config.get("EXTENSION_ACTIVATION_URL") else "not configured",
    )
    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=int(os.getenv('PORT', 5000)), debug=True)
