"""
Data access for the milk collection center.

Every function takes a RequestContext and only ever touches rows of the
context's dairy center. Rows leave this module as domain values
(CollectionEntry, Farmer) so callers never see loosely typed row data.
"""

import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from domain import Role, Session
from models import db, DairyCenter, Farmer, MilkEntry, User
from timezone_utils import get_today_ist, parse_date

logger = logging.getLogger(__name__)


class DataAccessError(Exception):
    status_code = 400


class NotFound(DataAccessError):
    status_code = 404


class NoDairyCenterAssigned(DataAccessError):
    status_code = 400

    def __init__(self, message='No dairy center assigned'):
        super().__init__(message)


class InvalidInput(DataAccessError):
    status_code = 400


class Conflict(DataAccessError):
    status_code = 409


def _require_center(ctx):
    if not ctx.dairy_center_id:
        raise NoDairyCenterAssigned()
    return ctx.dairy_center_id


def _clean(value):
    """Strip text input; blank becomes None"""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _parse_session(value):
    try:
        return Session.parse(value)
    except ValueError as e:
        raise InvalidInput(str(e)) from None


def _parse_role(value):
    try:
        return Role.parse(value)
    except ValueError as e:
        raise InvalidInput(str(e)) from None


def _parse_day(value, default=None):
    try:
        return parse_date(value, default)
    except ValueError:
        raise InvalidInput(f"Invalid date: {value!r} (expected YYYY-MM-DD)") from None


# ================== FARMERS ==================
def _farmer_row(ctx, farmer_id):
    center_id = _require_center(ctx)
    farmer = db.session.get(Farmer, farmer_id)
    if farmer is None or farmer.dairy_center_id != center_id:
        raise NotFound(f"Farmer {farmer_id} not found")
    return farmer


def list_farmers(ctx, search=None):
    """Farmers of the center by name, optionally matching name, village (any case) or phone."""
    if not ctx.dairy_center_id:
        return []
    query = Farmer.query.filter_by(dairy_center_id=ctx.dairy_center_id)
    search = _clean(search)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Farmer.name.ilike(pattern),
                                 Farmer.village.ilike(pattern),
                                 Farmer.phone.like(pattern)))
    rows = query.order_by(Farmer.name, Farmer.id).all()
    return [f.to_value() for f in rows]


def count_farmers(ctx):
    if not ctx.dairy_center_id:
        return 0
    return Farmer.query.filter_by(dairy_center_id=ctx.dairy_center_id).count()


def get_farmer(ctx, farmer_id):
    return _farmer_row(ctx, farmer_id).to_value()


def create_farmer(ctx, name, phone=None, village=None):
    center_id = _require_center(ctx)
    name = _clean(name)
    if not name:
        raise InvalidInput("Farmer name is required")

    farmer = Farmer(dairy_center_id=center_id, name=name,
                    phone=_clean(phone), village=_clean(village))
    db.session.add(farmer)
    db.session.commit()
    logger.info(f"Farmer {farmer.id} '{farmer.name}' added to center {center_id}")
    return farmer.to_value()


def update_farmer(ctx, farmer_id, name, phone=None, village=None):
    farmer = _farmer_row(ctx, farmer_id)
    name = _clean(name)
    if not name:
        raise InvalidInput("Farmer name is required")

    farmer.name = name
    farmer.phone = _clean(phone)
    farmer.village = _clean(village)
    db.session.commit()
    logger.info(f"Farmer {farmer.id} updated")
    return farmer.to_value()


def delete_farmer(ctx, farmer_id):
    farmer = _farmer_row(ctx, farmer_id)
    db.session.delete(farmer)
    db.session.commit()
    logger.info(f"Farmer {farmer_id} deleted from center {ctx.dairy_center_id}")


# ================== MILK ENTRIES ==================
def list_entries(ctx, start_date=None, end_date=None, farmer_id=None, session=None):
    """Entries of the context's center, newest first. Filters are optional."""
    if not ctx.dairy_center_id:
        return []

    query = MilkEntry.query.filter_by(dairy_center_id=ctx.dairy_center_id)
    start_date = _parse_day(start_date)
    end_date = _parse_day(end_date)
    if start_date:
        query = query.filter(MilkEntry.date >= start_date)
    if end_date:
        query = query.filter(MilkEntry.date <= end_date)
    if farmer_id is not None:
        query = query.filter_by(farmer_id=farmer_id)
    if session:
        query = query.filter_by(session=_parse_session(session).value)

    rows = query.order_by(MilkEntry.date.desc(), MilkEntry.created_at.desc(), MilkEntry.id.desc()).all()
    return [r.to_entry() for r in rows]


def get_entry(ctx, entry_id):
    center_id = _require_center(ctx)
    entry = db.session.get(MilkEntry, entry_id)
    if entry is None or entry.dairy_center_id != center_id:
        raise NotFound(f"Entry {entry_id} not found")
    return entry.to_entry()


def create_entry(ctx, farmer_id, session, fat_percentage, quantity, rate, amount, date=None):
    """
    Record one delivery.

    rate and amount must already be derived by the caller; they are stored
    exactly as given and never recomputed afterwards.
    """
    center_id = _require_center(ctx)
    farmer = _farmer_row(ctx, farmer_id)
    session = _parse_session(session)

    entry = MilkEntry(
        dairy_center_id=center_id,
        farmer_id=farmer.id,
        date=_parse_day(date, get_today_ist()),
        session=session.value,
        fat_percentage=fat_percentage,
        quantity=quantity,
        rate=rate,
        amount=amount,
    )
    db.session.add(entry)
    db.session.commit()
    logger.info(f"Entry {entry.id}: {farmer.name} {session.value} {quantity}L "
                f"@ {fat_percentage}% fat = Rs.{amount}")
    return entry.to_entry()


# ================== DAIRY CENTERS (ADMIN) ==================
def _center_row(center_id):
    center = db.session.get(DairyCenter, center_id)
    if center is None:
        raise NotFound(f"Dairy center {center_id} not found")
    return center


def list_dairy_centers():
    return DairyCenter.query.order_by(DairyCenter.name).all()


def create_dairy_center(name, address=None, phone=None):
    name = _clean(name)
    if not name:
        raise InvalidInput("Dairy center name is required")
    center = DairyCenter(name=name, address=_clean(address), phone=_clean(phone))
    db.session.add(center)
    db.session.commit()
    logger.info(f"Dairy center {center.id} '{center.name}' created")
    return center


def update_dairy_center(center_id, name, address=None, phone=None):
    center = _center_row(center_id)
    name = _clean(name)
    if not name:
        raise InvalidInput("Dairy center name is required")
    center.name = name
    center.address = _clean(address)
    center.phone = _clean(phone)
    db.session.commit()
    logger.info(f"Dairy center {center.id} updated")
    return center


def delete_dairy_center(center_id):
    center = _center_row(center_id)
    MilkEntry.query.filter_by(dairy_center_id=center.id).delete()
    Farmer.query.filter_by(dairy_center_id=center.id).delete()
    User.query.filter_by(dairy_center_id=center.id).update({"dairy_center_id": None})
    db.session.delete(center)
    db.session.commit()
    logger.info(f"Dairy center {center_id} deleted")


# ================== USERS (ADMIN) ==================
def _user_row(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


def list_users():
    return User.query.order_by(User.email).all()


def create_user(email, password, full_name=None, role=None, dairy_center_id=None):
    email = _clean(email)
    if not email or not password:
        raise InvalidInput("Email and password are required")
    role = _parse_role(role)
    if dairy_center_id is not None:
        _center_row(dairy_center_id)

    user = User(email=email.lower(), full_name=_clean(full_name),
                role=role.value if role else None, dairy_center_id=dairy_center_id)
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict(f"User {email} already exists") from None
    logger.info(f"User {user.email} registered (role={user.role}, center={user.dairy_center_id})")
    return user


def update_user_dairy_center(user_id, dairy_center_id):
    user = _user_row(user_id)
    if dairy_center_id is not None:
        _center_row(dairy_center_id)
    user.dairy_center_id = dairy_center_id
    db.session.commit()
    logger.info(f"User {user.email} assigned to center {dairy_center_id}")
    return user


def update_user_role(user_id, role):
    """Replace the user's role. None removes it."""
    user = _user_row(user_id)
    role = _parse_role(role)
    user.role = role.value if role else None
    db.session.commit()
    logger.info(f"User {user.email} role set to {user.role}")
    return user


def find_user_by_email(email):
    if not email:
        return None
    return User.query.filter_by(email=email.strip().lower()).first()


def create_default_admin(email, password):
    """Create the super admin if no user with that email exists. Returns True if created."""
    if find_user_by_email(email):
        return False
    create_user(email, password, full_name='Administrator', role=Role.SUPER_ADMIN)
    return True
