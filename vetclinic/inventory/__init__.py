from flask import Blueprint

inventory = Blueprint('inventory', __name__)

from vetclinic.inventory import routes  # noqa: F401, E402
from vetclinic.inventory import models  # noqa: F401, E402  — registers InventoryItem/StockMovement
