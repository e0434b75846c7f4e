from flask import Blueprint

sales = Blueprint('sales', __name__)

from vetclinic.sales import routes  # noqa: F401, E402
from vetclinic.sales import models  # noqa: F401, E402  — registers Sale/SaleItem/SaleSequence
