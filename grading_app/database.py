"""
database.py
-----------
Data access for the grading system. GradingStore wraps a SQLAlchemy session and
holds every query the routes need: users, model presets, projects and grades.
Rule violations are raised as GradingError; anything else (database down, etc.)
propagates to the caller.
"""

from datetime import datetime, date, time

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from . import config
from .auth import hash_password
from .models import db, User, ModelPreset, Project, LaptopGrade
from .validation import (
    GradingError,
    build_preset_label,
    clean_str,
    normalize_device_type,
    normalize_int,
    normalize_role,
    normalize_touch_status,
    parse_battery,
    pick_other,
    require,
    resolve_int,
    resolve_text,
    resolve_touch_status,
)

PRESET_ORDER = (ModelPreset.brand.asc(), ModelPreset.model.asc(), ModelPreset.preset_label.asc())


def init_db(app, store):
    """Create missing tables and the initial admin account."""
    with app.app_context():
        db.create_all()
        store.bootstrap_admin(app.config.get('INITIAL_ADMIN_USER'), app.config.get('INITIAL_ADMIN_PASS'))


def _parse_day(raw):
    try:
        return datetime.strptime(clean_str(raw), '%Y-%m-%d').date()
    except ValueError:
        return None


def _day_bounds(day):
    return datetime.combine(day, time.min), datetime.combine(day, time.max)


def _grade_row(grade):
    row = grade.to_dict()
    row['userName'] = grade.created_by.user_name if grade.created_by else ''
    row['presetLabel'] = grade.preset.preset_label if grade.preset else ''
    row['projectName'] = grade.project.name if grade.project else ''
    row['projectDeviceType'] = grade.project.device_type if grade.project else ''
    return row


class GradingStore:
    """Explicit data-access handle; one per application, bound to a session."""

    def __init__(self, session):
        self.session = session

    def _save(self, obj):
        self.session.add(obj)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return obj

    def _update(self, model, record_id, **values):
        record = self.session.get(model, normalize_int(record_id, None) or 0)
        if record is None:
            return False
        for key, value in values.items():
            setattr(record, key, value)
        self._save(record)
        return True

    # ------------------------------------------------------------
    # Users
    # ------------------------------------------------------------
    def get_user_by_name(self, user_name):
        return self.session.execute(
            select(User).where(User.user_name == user_name)
        ).scalar_one_or_none()

    def list_users(self):
        users = self.session.execute(select(User).order_by(User.user_name.asc())).scalars()
        return [u.to_dict() for u in users]

    def create_user(self, user_name, password, role='TECH'):
        user_name = clean_str(user_name)
        if not user_name or not password:
            raise GradingError("Username and password are required.")
        if self.get_user_by_name(user_name) is not None:
            raise GradingError(f"Username '{user_name}' is already taken.")

        user = User(
            user_name=user_name,
            password_hash=hash_password(password),
            role=normalize_role(role),
            active=True,
        )
        try:
            self._save(user)
        except IntegrityError:
            raise GradingError(f"Username '{user_name}' is already taken.")
        return user.to_dict()

    def set_user_active(self, user_id, active):
        return self._update(User, user_id, active=bool(active))

    def set_user_role(self, user_id, role):
        return self._update(User, user_id, role=normalize_role(role))

    def bootstrap_admin(self, user_name, password):
        """Provision the configured admin once; returns True when it was created."""
        if not user_name or not password:
            return False
        if self.get_user_by_name(user_name) is not None:
            return False
        self._save(User(
            user_name=user_name,
            password_hash=hash_password(password),
            role='ADMIN',
            active=True,
        ))
        return True

    # ------------------------------------------------------------
    # Presets
    # ------------------------------------------------------------
    def _preset_query(self, filters=None, active_only=True):
        filters = filters or {}
        stmt = select(ModelPreset)
        if active_only:
            stmt = stmt.where(ModelPreset.active.is_(True))

        device_type = clean_str(filters.get('deviceType'))
        if device_type:
            stmt = stmt.where(ModelPreset.device_type == device_type)
        brand = clean_str(filters.get('brand'))
        if brand:
            stmt = stmt.where(ModelPreset.brand == brand)
        model = clean_str(filters.get('model'))
        if model:
            stmt = stmt.where(ModelPreset.model == model)

        return stmt.order_by(*PRESET_ORDER)

    def list_presets(self, active_only=True):
        return self.list_presets_filtered({}, active_only)

    def list_presets_filtered(self, filters, active_only=True):
        presets = self.session.execute(self._preset_query(filters, active_only)).scalars()
        return [p.to_dict() for p in presets]

    def list_presets_detailed(self, filters, active_only=True):
        """Like list_presets_filtered, plus the name of the user who created each preset."""
        stmt = self._preset_query(filters, active_only).options(joinedload(ModelPreset.created_by))
        rows = []
        for preset in self.session.execute(stmt).scalars():
            row = preset.to_dict()
            row['createdByUserName'] = preset.created_by.user_name if preset.created_by else ''
            rows.append(row)
        return rows

    @staticmethod
    def preset_filter_options(presets):
        """Distinct device types, brands and models for the preset filter selects."""
        return {
            'deviceTypes': sorted({p.get('deviceType') or 'LAPTOP' for p in presets}),
            'brands': sorted({p['brand'] for p in presets if p.get('brand')}),
            'models': sorted({p['model'] for p in presets if p.get('model')}),
        }

    def get_preset_by_id(self, preset_id):
        preset_id = normalize_int(preset_id, None)
        if preset_id is None:
            return None
        preset = self.session.get(ModelPreset, preset_id)
        return preset.to_dict() if preset else None

    def create_preset(self, user, body):
        brand = require(clean_str(pick_other(body, 'brand')), "Brand is required.")
        model = require(clean_str(body.get('model')), "Model is required.")
        cpu = require(clean_str(body.get('defaultCpu')), "Default CPU is required.")
        ram_gb = normalize_int(pick_other(body, 'defaultRamGb'), 0)
        if ram_gb <= 0:
            raise GradingError("Default RAM (GB) is required.")
        ssd_gb = normalize_int(pick_other(body, 'defaultSsdGb'), 0)
        if ssd_gb <= 0:
            raise GradingError("Default SSD (GB) is required.")

        preset = ModelPreset(
            device_type=normalize_device_type(body.get('deviceType')),
            brand=brand,
            model=model,
            preset_label=clean_str(body.get('presetLabel')) or f"{brand} {model} {ram_gb}/{ssd_gb}",
            default_cpu=cpu,
            default_ram_gb=ram_gb,
            default_ssd_gb=ssd_gb,
            touch_default=normalize_touch_status(body.get('touchDefault')),
            default_observations=clean_str(body.get('defaultObservations')) or None,
            active=True,
            created_by_user_id=user['id'] if user else None,
        )
        return self._save(preset).to_dict()

    def create_preset_from_unit(self, user, body):
        """Turn the unit currently typed into the grade form into a reusable preset."""
        brand = require(clean_str(pick_other(body, 'brand')), "Brand is required to create a preset.")
        model = require(clean_str(body.get('model')), "Model is required to create a preset.")
        cpu = require(clean_str(body.get('cpu')), "CPU is required to create a preset.")
        ram_gb = normalize_int(body.get('ramGb'), 0)
        ssd_gb = normalize_int(body.get('ssdGb'), 0)
        if ram_gb <= 0 or ssd_gb <= 0:
            raise GradingError("RAM and SSD are required to create a preset.")

        preset = ModelPreset(
            device_type=normalize_device_type(body.get('deviceType')),
            brand=brand,
            model=model,
            preset_label=build_preset_label(brand, model, cpu, ram_gb, ssd_gb),
            default_cpu=cpu,
            default_ram_gb=ram_gb,
            default_ssd_gb=ssd_gb,
            touch_default=normalize_touch_status(body.get('touchStatus')),
            default_observations=clean_str(body.get('observations')) or None,
            active=True,
            created_by_user_id=user['id'] if user else None,
        )
        return self._save(preset).to_dict()

    def set_preset_active(self, preset_id, active):
        # grades keep their snapshot; nothing cascades
        return self._update(ModelPreset, preset_id, active=bool(active))

    def disable_preset(self, preset_id):
        return self.set_preset_active(preset_id, False)

    # ------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------
    def create_project(self, user, body):
        name = require(clean_str(body.get('name')), "Project name is required.")
        project = Project(
            name=name,
            created_on=date.today(),
            device_type=normalize_device_type(body.get('deviceType')),
            status='OPEN',
            created_by_user_id=user['id'] if user else None,
        )
        return self._save(project).to_dict()

    def list_projects(self):
        """All projects, newest first, each with its gradeCount."""
        counts = (
            select(LaptopGrade.project_id, func.count(LaptopGrade.id).label('grade_count'))
            .group_by(LaptopGrade.project_id)
            .subquery()
        )
        stmt = (
            select(Project, func.coalesce(counts.c.grade_count, 0))
            .outerjoin(counts, counts.c.project_id == Project.id)
            .order_by(Project.created_at.desc(), Project.id.desc())
        )
        projects = []
        for project, grade_count in self.session.execute(stmt).all():
            row = project.to_dict()
            row['gradeCount'] = grade_count
            projects.append(row)
        return projects

    def get_project_by_id(self, project_id):
        project_id = normalize_int(project_id, None)
        if project_id is None:
            return None
        project = self.session.get(Project, project_id)
        return project.to_dict() if project else None

    def set_project_status(self, project_id, status):
        # anything other than CLOSED reopens
        return self._update(Project, project_id, status='CLOSED' if status == 'CLOSED' else 'OPEN')

    # ------------------------------------------------------------
    # Grades
    # ------------------------------------------------------------
    def _resolve_preset(self, raw_preset_id):
        """Return (preset_id_to_store, preset_for_defaults)."""
        preset_id = normalize_int(raw_preset_id, None)
        if not preset_id:
            return None, None
        preset = self.session.get(ModelPreset, preset_id)
        if preset is None:
            return None, None
        # an inactive preset keeps its reference but supplies no defaults
        return preset.id, (preset if preset.active else None)

    def serial_exists(self, project_id, serial_number):
        stmt = select(LaptopGrade.id).where(
            LaptopGrade.project_id == project_id,
            LaptopGrade.serial_number == serial_number,
        )
        return self.session.execute(stmt).first() is not None

    def create_grade(self, user, body, project):
        """
        Validate a grade submission and insert it in one commit.
        Each hardware field uses the submitted value, then the active preset's default.
        Raises GradingError on the first broken rule; nothing is written in that case.
        """
        record = self.session.get(Project, project['id']) if project else None
        if record is None or record.status != 'OPEN':
            raise GradingError("Select an open project first.")

        preset_id, preset = self._resolve_preset(body.get('presetId'))

        serial_number = require(clean_str(body.get('serialNumber')), "Serial Number is required.")
        if self.serial_exists(record.id, serial_number):
            raise GradingError(f"Serial Number {serial_number} already exists in this project.")

        brand = resolve_text(pick_other(body, 'brand'), preset.brand if preset else None)
        model = resolve_text(body.get('model'), preset.model if preset else None)
        cpu = resolve_text(body.get('cpu'), preset.default_cpu if preset else None)
        ram_gb = resolve_int(body.get('ramGb'), preset.default_ram_gb if preset else None)
        ssd_gb = resolve_int(body.get('ssdGb'), preset.default_ssd_gb if preset else None)
        if not (brand and model and cpu and ram_gb and ssd_gb):
            raise GradingError("Brand, Model, CPU, RAM and SSD are required (pick a preset or fill them in).")

        touch_status = resolve_touch_status(body.get('touchStatus'), preset.touch_default if preset else None)
        observations = require(
            resolve_text(body.get('observations'), preset.default_observations if preset else None),
            "Observations are required.",
        )
        battery = parse_battery(body.get('batteryHealthPercent'))

        grade = LaptopGrade(
            serial_number=serial_number,
            brand=brand,
            model=model,
            cpu=cpu,
            ram_gb=ram_gb,
            ssd_gb=ssd_gb,
            touch_status=touch_status,
            touchscreen=touch_status == 'TOUCH',
            battery_health_percent=battery,
            observations=observations,
            project_id=record.id,
            preset_id=preset_id,
            created_by_user_id=user['id'],
        )
        try:
            self._save(grade)
        except IntegrityError:
            # a concurrent submission won the unique (project, serial) race
            raise GradingError(f"Serial Number {serial_number} already exists in this project.")
        return grade.to_dict()

    def _grade_query(self):
        return select(LaptopGrade).options(
            joinedload(LaptopGrade.created_by),
            joinedload(LaptopGrade.preset),
            joinedload(LaptopGrade.project),
        )

    def _grade_rows(self, stmt):
        return [_grade_row(g) for g in self.session.execute(stmt).scalars().unique()]

    def list_grades_for_project(self, project_id, only_mine_today=False, user_id=None):
        stmt = self._grade_query().where(LaptopGrade.project_id == normalize_int(project_id, 0))
        if only_mine_today:
            start, end = _day_bounds(date.today())
            stmt = stmt.where(
                LaptopGrade.created_by_user_id == user_id,
                LaptopGrade.created_at.between(start, end),
            )
        stmt = stmt.order_by(LaptopGrade.created_at.desc(), LaptopGrade.id.desc())
        return self._grade_rows(stmt.limit(config.PROJECT_GRADES_LIMIT))

    def list_grades_for_user(self, user):
        stmt = self._grade_query()
        if user['role'] != 'ADMIN':
            stmt = stmt.where(LaptopGrade.created_by_user_id == user['id'])
        stmt = stmt.order_by(LaptopGrade.created_at.desc(), LaptopGrade.id.desc())
        return self._grade_rows(stmt.limit(config.USER_GRADES_LIMIT))

    def list_grades_admin_filtered(self, filters):
        """
        Admin grade search. Supported filters (all optional): projectId, model
        (substring), fromDate / toDate (YYYY-MM-DD, whole days, inclusive),
        technician (exact username), presetId, deviceType (of the project).
        """
        stmt = self._grade_query()

        project_id = normalize_int(filters.get('projectId'), None)
        if project_id:
            stmt = stmt.where(LaptopGrade.project_id == project_id)

        model = clean_str(filters.get('model'))
        if model:
            stmt = stmt.where(LaptopGrade.model.icontains(model, autoescape=True))

        from_day = _parse_day(filters.get('fromDate'))
        to_day = _parse_day(filters.get('toDate'))
        if from_day and to_day:
            stmt = stmt.where(LaptopGrade.created_at.between(_day_bounds(from_day)[0], _day_bounds(to_day)[1]))
        elif from_day:
            stmt = stmt.where(LaptopGrade.created_at >= _day_bounds(from_day)[0])
        elif to_day:
            stmt = stmt.where(LaptopGrade.created_at <= _day_bounds(to_day)[1])

        technician = clean_str(filters.get('technician'))
        if technician:
            stmt = stmt.join(User, LaptopGrade.created_by_user_id == User.id).where(User.user_name == technician)

        preset_id = normalize_int(filters.get('presetId'), None)
        if preset_id:
            stmt = stmt.where(LaptopGrade.preset_id == preset_id)

        device_type = clean_str(filters.get('deviceType'))
        if device_type:
            stmt = stmt.join(Project, LaptopGrade.project_id == Project.id).where(Project.device_type == device_type)

        stmt = stmt.order_by(LaptopGrade.created_at.desc(), LaptopGrade.id.desc())
        return self._grade_rows(stmt.limit(config.ADMIN_GRADES_LIMIT))

    def list_grades_for_export(self, project_id):
        stmt = (
            self._grade_query()
            .where(LaptopGrade.project_id == normalize_int(project_id, 0))
            .order_by(LaptopGrade.created_at.asc(), LaptopGrade.id.asc())
        )
        return self._grade_rows(stmt)
