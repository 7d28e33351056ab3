from flask import Blueprint

# Billing API lives under /api/stripe
bp = Blueprint('stripe', __name__, url_prefix='/api/stripe')

from . import routes
