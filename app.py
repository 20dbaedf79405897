from flask import Flask, Blueprint, render_template, request, jsonify, send_file, current_app
from flask_login import LoginManager, login_user, login_required, logout_user, current_user
from flask_migrate import Migrate
from flask.cli import with_appcontext
import click
from datetime import datetime
import os, csv, io, logging, math
from dotenv import load_dotenv
from functools import wraps

import data_access
import entry_aggregator
import statement_builder
from data_access import DataAccessError, InvalidInput, NotFound
from domain import RequestContext, Role, Session
from models import db, User
from rate_calculator import compute_rate, entry_amount
from timezone_utils import IST, get_today_ist, get_ist_datetime, month_bounds, parse_date
from whatsapp_handler import WhatsAppHandler

load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))
logger = logging.getLogger(__name__)

bp = Blueprint('milk', __name__)
login_manager = LoginManager()
migrate = Migrate()

# Fat is measured on a 0-15% scale at the collection counter
MIN_FAT = 0.0
MAX_FAT = 15.0
MAX_QUANTITY = 10000.0


def _default_config():
    return {
        'SECRET_KEY': os.environ.get("SECRET_KEY", "milkcenter-secret-key"),
        'SQLALCHEMY_DATABASE_URI': os.environ.get("DATABASE_URL")
                                   or f"sqlite:///{os.path.join(basedir, 'milkcenter.db')}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': os.environ.get("LOG_LEVEL", "INFO"),
        'CENTER_NAME': os.environ.get("CENTER_NAME", "Milk Collection Center"),
        'WHATSAPP_TOKEN': os.environ.get("WHATSAPP_TOKEN", ""),
        'WHATSAPP_PHONE_ID': os.environ.get("WHATSAPP_PHONE_ID", ""),
        'ADMIN_EMAIL': os.environ.get("ADMIN_EMAIL", "admin@milkcenter.local"),
        'ADMIN_PASSWORD': os.environ.get("ADMIN_PASSWORD", "admin123"),
    }


def create_app(config=None):
    app = Flask(__name__)
    app.config.update(_default_config())
    if config:
        app.config.update(config)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.extensions['whatsapp'] = WhatsAppHandler(
        token=app.config['WHATSAPP_TOKEN'],
        phone_number_id=app.config['WHATSAPP_PHONE_ID'],
        center_name=app.config['CENTER_NAME'],
    )

    app.register_blueprint(bp)
    app.register_error_handler(DataAccessError, handle_data_access_error)
    app.cli.add_command(init_db_command)

    with app.app_context():
        db.create_all()

    return app


# ================== AUTH ==================
@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"success": False, "error": "Login required"}), 401


def handle_data_access_error(e):
    logger.warning(f"{request.method} {request.path} failed: {e}")
    return jsonify({"success": False, "error": str(e)}), e.status_code


# Role-based access control; super admins pass every check
def role_required(*roles):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            role = current_user.app_role
            if role not in roles and role is not Role.SUPER_ADMIN:
                return jsonify({"success": False, "error": "Access denied. Insufficient permissions."}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def _request_context():
    """Scope for this request. Only super admins may pick another center."""
    role = current_user.app_role
    center_id = current_user.dairy_center_id
    if role is Role.SUPER_ADMIN:
        requested = request.args.get('dairy_center_id') or _json_body().get('dairy_center_id')
        if requested:
            center_id = _int_value(requested, 'dairy_center_id')
    return RequestContext(user_id=current_user.id, dairy_center_id=center_id, role=role)


# ================== HELPERS ==================
def _json_body():
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form


def _int_value(value, name):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be a whole number") from None


def _float_value(value, name, minimum=None, maximum=None, exclusive_minimum=False):
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be a number") from None
    if not math.isfinite(number):
        raise InvalidInput(f"{name} must be a finite number")
    if minimum is not None and (number < minimum or (exclusive_minimum and number == minimum)):
        raise InvalidInput(f"{name} must be {'greater than' if exclusive_minimum else 'at least'} {minimum:g}")
    if maximum is not None and number > maximum:
        raise InvalidInput(f"{name} must be at most {maximum:g}")
    return number


def _selected_month():
    """Parse ?month=YYYY-MM, defaulting to the current month (IST)"""
    selected = request.args.get('month') or get_ist_datetime().strftime("%Y-%m")
    try:
        year, month = map(int, selected.split('-'))
        month_bounds(year, month)
    except ValueError:
        raise InvalidInput(f"Invalid month: {selected!r} (expected YYYY-MM)") from None
    return year, month


def _optional_farmer_id():
    value = request.args.get('farmer_id') or _json_body().get('farmer_id')
    if value in (None, '', 'all'):
        return None
    return _int_value(value, 'farmer_id')


def _whatsapp():
    return current_app.extensions['whatsapp']


def entry_to_dict(e):
    return {
        "id": e.id,
        "farmer_id": e.farmer_id,
        "farmer_name": e.farmer_name,
        "date": e.date.isoformat(),
        "session": e.session.value,
        "fat_percentage": e.fat_percentage,
        "quantity": e.quantity_liters,
        "rate": e.rate_per_liter,
        "amount": e.total_amount,
    }


def summary_to_dict(s):
    return {
        "entry_count": s.entry_count,
        "total_quantity": s.total_quantity,
        "total_amount": s.total_amount,
        "morning_quantity": s.morning_quantity,
        "evening_quantity": s.evening_quantity,
        "average_fat": s.average_fat,
        "farmer_count": s.farmer_count,
    }


def statement_to_dict(st):
    if st is None:
        return None
    return {
        "farmer_id": st.farmer_id,
        "farmer_name": st.farmer_name,
        "phone": st.phone,
        "month": st.month,
        "month_name": st.month_name,
        "year": st.year,
        "entries": [entry_to_dict(e) for e in st.entries],
        "total_quantity": st.total_quantity,
        "total_amount": st.total_amount,
        "average_fat": st.average_fat,
    }


def farmer_to_dict(f):
    return {"id": f.id, "name": f.name, "phone": f.phone, "village": f.village}


def _month_statement(ctx, farmer_id, year, month):
    farmer = data_access.get_farmer(ctx, farmer_id)
    start, end = month_bounds(year, month)
    entries = data_access.list_entries(ctx, start_date=start, end_date=end, farmer_id=farmer.id)
    return farmer, statement_builder.build_statement(farmer, month, year, entries)


# ================== AUTHENTICATION ROUTES ==================
@bp.route('/health')
def health():
    return jsonify({"status": "ok"})


@bp.route('/login', methods=['POST'])
def login():
    data = _json_body()
    user = data_access.find_user_by_email(data.get('email'))

    if user and user.check_password(data.get('password') or ''):
        if not user.is_active:
            return jsonify({"success": False, "error": "Account disabled"}), 403
        login_user(user)
        logger.info(f"User {user.email} logged in")
        return jsonify({"success": True, "user": user.to_dict()})

    logger.warning(f"Failed login for {data.get('email')!r}")
    return jsonify({"success": False, "error": "Invalid email or password"}), 401


@bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})


@bp.route('/me')
@login_required
def me():
    return jsonify(current_user.to_dict())


# ================== DASHBOARD ==================
@bp.route('/dashboard')
@login_required
def dashboard():
    ctx = _request_context()
    today = get_today_ist()
    entries = data_access.list_entries(ctx, start_date=today, end_date=today)
    stats = entry_aggregator.daily_stats(today, entries, data_access.count_farmers(ctx))

    return jsonify({
        "date": today.isoformat(),
        "farmers_count": stats.farmers_count,
        "summary": summary_to_dict(stats.summary),
        "recent_entries": [entry_to_dict(e) for e in entries[:5]],
    })


# ================== FARMER MANAGEMENT ==================
@bp.route('/farmers', methods=['GET', 'POST'])
@login_required
def farmers():
    ctx = _request_context()
    if request.method == 'POST':
        data = _json_body()
        farmer = data_access.create_farmer(ctx, data.get('name'), data.get('phone'), data.get('village'))
        return jsonify({"success": True, "message": "Farmer added successfully",
                        "farmer": farmer_to_dict(farmer)}), 201

    rows = data_access.list_farmers(ctx, request.args.get('search'))
    return jsonify([farmer_to_dict(f) for f in rows])


@bp.route('/farmers/<int:farmer_id>', methods=['GET', 'PUT', 'DELETE'])
@login_required
def farmer_detail(farmer_id):
    ctx = _request_context()
    if request.method == 'PUT':
        data = _json_body()
        farmer = data_access.update_farmer(ctx, farmer_id, data.get('name'), data.get('phone'),
                                           data.get('village'))
        return jsonify({"success": True, "message": "Farmer updated successfully",
                        "farmer": farmer_to_dict(farmer)})
    if request.method == 'DELETE':
        data_access.delete_farmer(ctx, farmer_id)
        return jsonify({"success": True, "message": "Farmer deleted successfully"})

    return jsonify(farmer_to_dict(data_access.get_farmer(ctx, farmer_id)))


# ================== COLLECTIONS ==================
@bp.route('/entries/rate')
@login_required
def rate_preview():
    fat = _float_value(request.args.get('fat'), 'fat_percentage', MIN_FAT, MAX_FAT)
    rate = compute_rate(fat)
    quantity = request.args.get('quantity')
    amount = entry_amount(rate, _float_value(quantity, 'quantity', 0, MAX_QUANTITY)) if quantity else None
    return jsonify({"fat_percentage": fat, "rate": rate, "amount": amount})


@bp.route('/entries', methods=['GET', 'POST'])
@login_required
def entries():
    ctx = _request_context()
    if request.method == 'POST':
        data = _json_body()
        farmer_id = _int_value(data.get('farmer_id'), 'farmer_id')
        fat = _float_value(data.get('fat_percentage'), 'fat_percentage', MIN_FAT, MAX_FAT)
        quantity = _float_value(data.get('quantity'), 'quantity', 0, MAX_QUANTITY,
                                exclusive_minimum=True)

        rate = compute_rate(fat)
        amount = entry_amount(rate, quantity)
        entry = data_access.create_entry(ctx, farmer_id, data.get('session') or 'morning',
                                         fat, quantity, rate, amount, data.get('date'))
        return jsonify({
            "success": True,
            "message": f"Collection recorded for {entry.farmer_name} - "
                       f"{entry.quantity_liters}L @ ₹{entry.rate_per_liter}/L = ₹{entry.total_amount:.0f}",
            "entry": entry_to_dict(entry),
        }), 201

    day = request.args.get('date')
    rows = data_access.list_entries(
        ctx,
        start_date=day or request.args.get('start'),
        end_date=day or request.args.get('end'),
        farmer_id=_optional_farmer_id(),
        session=request.args.get('session'),
    )
    return jsonify([entry_to_dict(e) for e in rows])


@bp.route('/entries/<int:entry_id>')
@login_required
def entry_detail(entry_id):
    return jsonify(entry_to_dict(data_access.get_entry(_request_context(), entry_id)))


@bp.route('/entries/<int:entry_id>/notify', methods=['POST'])
@login_required
def notify_entry(entry_id):
    entry = data_access.get_entry(_request_context(), entry_id)
    handler = _whatsapp()
    result = handler.notify(entry.farmer_phone, handler.collection_receipt(entry))
    return jsonify(result), 200 if result.get('success') else 400


# ================== DAILY COLLECTIONS ==================
@bp.route('/daily')
@login_required
def daily():
    ctx = _request_context()
    req_date = _parse_request_date(request.args.get('date'))
    session_filter = request.args.get('session', 'all')

    rows = data_access.list_entries(
        ctx, start_date=req_date, end_date=req_date,
        session=None if session_filter == 'all' else session_filter,
    )
    summary = entry_aggregator.summarize(rows)

    return jsonify({
        "date": req_date.isoformat(),
        "session": session_filter,
        "entries": [entry_to_dict(e) for e in rows],
        "summary": summary_to_dict(summary),
    })


def _parse_request_date(value):
    try:
        return parse_date(value, get_today_ist())
    except ValueError:
        raise InvalidInput(f"Invalid date: {value!r} (expected YYYY-MM-DD)") from None


# ================== MONTHLY REPORTS ==================
@bp.route('/reports/monthly')
@login_required
def monthly():
    ctx = _request_context()
    year, month = _selected_month()
    farmer_id = _optional_farmer_id()
    start, end = month_bounds(year, month)

    statement = None
    if farmer_id is not None:
        farmer, statement = _month_statement(ctx, farmer_id, year, month)
        farmers = [farmer]
        rows = list(statement.entries) if statement else []
    else:
        farmers = data_access.list_farmers(ctx)
        rows = data_access.list_entries(ctx, start_date=start, end_date=end)

    farmer_data = [{
        "farmer_id": st.farmer_id,
        "name": st.farmer_name,
        "total_quantity": st.total_quantity,
        "total_amount": st.total_amount,
        "average_fat": st.average_fat,
    } for st in statement_builder.build_statements(farmers, month, year, rows)]

    days = [{"date": day.isoformat(), "summary": summary_to_dict(entry_aggregator.summarize(day_entries))}
            for day, day_entries in entry_aggregator.group_by_date(rows).items()]

    return jsonify({
        "month": f"{year}-{month:02d}",
        "entries": [entry_to_dict(e) for e in rows],
        "summary": summary_to_dict(entry_aggregator.summarize(rows)),
        "farmers": farmer_data,
        "days": days,
        "statement": statement_to_dict(statement),
    })


@bp.route('/reports/statement/notify', methods=['POST'])
@login_required
def notify_statement():
    ctx = _request_context()
    farmer_id = _optional_farmer_id()
    if farmer_id is None:
        raise InvalidInput("farmer_id is required")
    year, month = _selected_month()

    farmer, statement = _month_statement(ctx, farmer_id, year, month)
    if statement is None:
        raise NotFound(f"No collections found for {farmer.name} in {year}-{month:02d}")

    handler = _whatsapp()
    result = handler.notify(statement.phone, handler.statement_message(statement))
    return jsonify(result), 200 if result.get('success') else 400


@bp.route('/reports/statement/print')
@login_required
def print_statement():
    ctx = _request_context()
    year, month = _selected_month()
    farmer_id = _optional_farmer_id()
    start, end = month_bounds(year, month)

    statement = None
    if farmer_id is not None:
        _farmer, statement = _month_statement(ctx, farmer_id, year, month)
        rows = list(statement.entries) if statement else []
    else:
        rows = data_access.list_entries(ctx, start_date=start, end_date=end)

    return render_template('statement.html',
                           center_name=current_app.config['CENTER_NAME'],
                           period=start.strftime('%B %Y'),
                           statement=statement,
                           entries=rows,
                           summary=entry_aggregator.summarize(rows),
                           show_farmer=farmer_id is None,
                           generated_at=datetime.now(IST))


# ================== EXPORT CSV ==================
@bp.route('/reports/export_month_csv')
@login_required
def export_month_csv():
    ctx = _request_context()
    year, month = _selected_month()
    start, end = month_bounds(year, month)

    rows = data_access.list_entries(ctx, start_date=start, end_date=end, farmer_id=_optional_farmer_id())
    rows = sorted(rows, key=lambda e: (e.farmer_name.lower(), e.date, e.session is Session.EVENING))

    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(['farmer_id', 'name', 'date', 'session', 'quantity', 'fat', 'rate', 'amount'])
    for r in rows:
        writer.writerow([
            r.farmer_id, r.farmer_name, r.date.isoformat(), r.session.value,
            r.quantity_liters, r.fat_percentage, r.rate_per_liter, r.total_amount
        ])

    buf.seek(0)
    return send_file(
        io.BytesIO(buf.getvalue().encode('utf-8')),
        mimetype='text/csv',
        as_attachment=True,
        download_name=f"collections_{year}-{month:02d}.csv"
    )


# ================== ADMIN ==================
@bp.route('/admin/dairy_centers', methods=['GET', 'POST'])
@login_required
@role_required(Role.SUPER_ADMIN)
def dairy_centers():
    if request.method == 'POST':
        data = _json_body()
        center = data_access.create_dairy_center(data.get('name'), data.get('address'), data.get('phone'))
        return jsonify({"success": True, "message": "Dairy center created successfully",
                        "dairy_center": center.to_dict()}), 201

    return jsonify([c.to_dict() for c in data_access.list_dairy_centers()])


@bp.route('/admin/dairy_centers/<int:center_id>', methods=['PUT', 'DELETE'])
@login_required
@role_required(Role.SUPER_ADMIN)
def dairy_center_detail(center_id):
    if request.method == 'DELETE':
        data_access.delete_dairy_center(center_id)
        return jsonify({"success": True, "message": "Dairy center deleted successfully"})

    data = _json_body()
    center = data_access.update_dairy_center(center_id, data.get('name'), data.get('address'), data.get('phone'))
    return jsonify({"success": True, "message": "Dairy center updated successfully",
                    "dairy_center": center.to_dict()})


@bp.route('/admin/users', methods=['GET', 'POST'])
@login_required
@role_required(Role.SUPER_ADMIN)
def manage_users():
    if request.method == 'POST':
        data = _json_body()
        center_id = data.get('dairy_center_id')
        user = data_access.create_user(
            data.get('email'), data.get('password'),
            full_name=data.get('full_name'),
            role=data.get('role'),
            dairy_center_id=_int_value(center_id, 'dairy_center_id') if center_id else None,
        )
        return jsonify({"success": True, "message": f"User {user.email} registered successfully",
                        "user": user.to_dict()}), 201

    return jsonify([u.to_dict() for u in data_access.list_users()])


@bp.route('/admin/users/<int:user_id>/dairy_center', methods=['PUT'])
@login_required
@role_required(Role.SUPER_ADMIN)
def update_user_dairy_center(user_id):
    center_id = _json_body().get('dairy_center_id')
    user = data_access.update_user_dairy_center(
        user_id, _int_value(center_id, 'dairy_center_id') if center_id else None)
    return jsonify({"success": True, "message": "User dairy center updated successfully",
                    "user": user.to_dict()})


@bp.route('/admin/users/<int:user_id>/role', methods=['PUT'])
@login_required
@role_required(Role.SUPER_ADMIN)
def update_user_role(user_id):
    user = data_access.update_user_role(user_id, _json_body().get('role'))
    return jsonify({"success": True, "message": "User role updated successfully", "user": user.to_dict()})


# ================== INITIAL SETUP ==================
def create_default_admin():
    """Create default super admin if not exists"""
    created = data_access.create_default_admin(current_app.config['ADMIN_EMAIL'],
                                               current_app.config['ADMIN_PASSWORD'])
    if created:
        logger.info(f"Default admin created: {current_app.config['ADMIN_EMAIL']}")
    return created


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Initialize database and create default admin"""
    db.create_all()
    create_default_admin()
    print("Database initialized and default admin created")


# ================== MAIN ==================
if __name__ == '__main__':
    app = create_app()
    with app.app_context():
        create_default_admin()
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port)
