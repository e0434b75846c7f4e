from flask import Blueprint

owners = Blueprint('owners', __name__)

from vetclinic.owners import routes   # noqa: F401, E402
from vetclinic.owners import models   # noqa: F401, E402  — registers Owner/Pet with SQLAlchemy
