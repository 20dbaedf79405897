# models.py
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from domain import CollectionEntry, Farmer as FarmerValue, Role, Session
from timezone_utils import get_ist_datetime

db = SQLAlchemy()


class DairyCenter(db.Model):
    """A collection site. Farmers, entries and directors belong to one."""
    __tablename__ = 'dairy_centers'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    created_at = db.Column(db.DateTime, default=get_ist_datetime)
    updated_at = db.Column(db.DateTime, default=get_ist_datetime, onupdate=get_ist_datetime)

    def __repr__(self):
        return f"<DairyCenter {self.id} {self.name}>"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
        }


class User(UserMixin, db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    full_name = db.Column(db.String(120), nullable=True)
    password_hash = db.Column(db.String(256), nullable=False)
    # super_admin / dairy_director, NULL means no role
    role = db.Column(db.String(20), nullable=True)
    dairy_center_id = db.Column(db.Integer, db.ForeignKey('dairy_centers.id', ondelete='SET NULL'),
                                nullable=True)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=get_ist_datetime)
    updated_at = db.Column(db.DateTime, default=get_ist_datetime, onupdate=get_ist_datetime)

    dairy_center = db.relationship('DairyCenter')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def app_role(self):
        return Role.parse(self.role)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "dairy_center_id": self.dairy_center_id,
            "dairy_center": self.dairy_center.to_dict() if self.dairy_center else None,
        }


class Farmer(db.Model):
    """People who supply milk to the center"""
    __tablename__ = 'farmers'
    id = db.Column(db.Integer, primary_key=True)
    dairy_center_id = db.Column(db.Integer, db.ForeignKey('dairy_centers.id', ondelete='CASCADE'),
                                nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    village = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime, default=get_ist_datetime)
    updated_at = db.Column(db.DateTime, default=get_ist_datetime, onupdate=get_ist_datetime)

    entries = db.relationship('MilkEntry', back_populates='farmer', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Farmer {self.id} {self.name}>"

    def to_value(self):
        return FarmerValue(id=self.id, name=self.name, phone=self.phone, village=self.village)

    def to_dict(self):
        return {
            "id": self.id,
            "dairy_center_id": self.dairy_center_id,
            "name": self.name,
            "phone": self.phone,
            "village": self.village,
        }


class MilkEntry(db.Model):
    """Milk collections FROM farmers. rate and amount are never recomputed."""
    __tablename__ = 'milk_entries'
    id = db.Column(db.Integer, primary_key=True)
    dairy_center_id = db.Column(db.Integer, db.ForeignKey('dairy_centers.id', ondelete='CASCADE'),
                                nullable=False, index=True)
    farmer_id = db.Column(db.Integer, db.ForeignKey('farmers.id', ondelete='CASCADE'), nullable=False)
    date = db.Column(db.Date, nullable=False, index=True)
    session = db.Column(db.String(10), nullable=False)
    fat_percentage = db.Column(db.Float, nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    rate = db.Column(db.Float, nullable=False)
    amount = db.Column(db.Float, nullable=False)
    created_at = db.Column(db.DateTime, default=get_ist_datetime)

    farmer = db.relationship('Farmer', back_populates='entries')

    def to_entry(self):
        return CollectionEntry(
            id=self.id,
            farmer_id=self.farmer_id,
            farmer_name=self.farmer.name,
            farmer_phone=self.farmer.phone,
            date=self.date,
            session=Session.parse(self.session),
            fat_percentage=self.fat_percentage,
            quantity_liters=self.quantity,
            rate_per_liter=self.rate,
            total_amount=self.amount,
            created_at=self.created_at,
        )
