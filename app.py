from flask import Flask
from flask_cors import CORS
from dotenv import load_dotenv

load_dotenv()

import config
from database import close_db
from views.customers import customers_bp
from views.locations import locations_bp
from views.tasks import tasks_bp
from views.users import users_bp

app = Flask(__name__)
if config.CORS_ALLOW_ORIGINS:
    CORS(
        app,
        origins=config.CORS_ALLOW_ORIGINS,
        supports_credentials=config.CORS_SUPPORTS_CREDENTIALS,
    )
else:
    CORS(app)

app.register_blueprint(tasks_bp)
app.register_blueprint(customers_bp)
app.register_blueprint(locations_bp)
app.register_blueprint(users_bp)


@app.teardown_appcontext
def teardown_db(exception):
    close_db(exception)


@app.route("/healthz", methods=["GET"])
def healthz():
    return {"status": "ok"}, 200
