from datetime import datetime
from decimal import Decimal
from vetclinic import db


class Owner(db.Model):
    """A pet owner — the customer side of every sale."""
    __tablename__ = 'owners'

    id           = db.Column(db.Integer, primary_key=True)
    first_name   = db.Column(db.String(60), nullable=False)
    last_name    = db.Column(db.String(60), nullable=False)
    email        = db.Column(db.String(120), nullable=True, index=True)
    phone        = db.Column(db.String(20), unique=True, nullable=False, index=True)
    address      = db.Column(db.Text, nullable=True)
    total_spent  = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    total_visits = db.Column(db.Integer, nullable=False, default=0)
    last_visit   = db.Column(db.DateTime, nullable=True)
    is_active    = db.Column(db.Boolean, nullable=False, default=True)
    created_at   = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    pets = db.relationship('Pet', backref='owner', lazy='select',
                           cascade='all, delete-orphan')

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def add_to_total_spent(self, amount: Decimal) -> None:
        self.total_spent = Decimal(str(self.total_spent or 0)) + Decimal(str(amount))

    def record_visit(self) -> None:
        self.last_visit = datetime.utcnow()
        self.total_visits = (self.total_visits or 0) + 1

    def to_dict(self, include_pets=False) -> dict:
        data = {
            'id':          self.id,
            'firstName':   self.first_name,
            'lastName':    self.last_name,
            'fullName':    self.full_name,
            'email':       self.email,
            'phone':       self.phone,
            'address':     self.address,
            'totalSpent':  float(self.total_spent or 0),
            'totalVisits': self.total_visits,
            'lastVisit':   self.last_visit.isoformat() if self.last_visit else None,
            'isActive':    self.is_active,
        }
        if include_pets:
            data['pets'] = [p.to_dict() for p in self.pets]
        return data

    def __repr__(self):
        return f"<Owner {self.full_name!r} ({self.phone})>"


class Pet(db.Model):
    __tablename__ = 'pets'

    id         = db.Column(db.Integer, primary_key=True)
    owner_id   = db.Column(db.Integer, db.ForeignKey('owners.id'), nullable=False, index=True)
    name       = db.Column(db.String(60), nullable=False)
    species    = db.Column(db.String(30), nullable=False, default='other')
    breed      = db.Column(db.String(60), nullable=True)
    is_active  = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            'id':      self.id,
            'owner':   self.owner_id,
            'name':    self.name,
            'species': self.species,
            'breed':   self.breed,
        }

    def __repr__(self):
        return f"<Pet {self.name!r} ({self.species}) owner={self.owner_id}>"
