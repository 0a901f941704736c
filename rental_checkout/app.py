"""
Instance unique de l'application FastAPI (construite par la factory).
"""
import logging
from rental_checkout.app_setup.factory import create_app

logging.getLogger(__name__).debug("rental_checkout.app: building FastAPI app")
app = create_app()
