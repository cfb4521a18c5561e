"""
models.py
---------
SQLAlchemy models for the grading database: users, model presets, projects and
laptop grades. Grades keep a snapshot of the unit's hardware values, so presets
are referenced by id only and are never hard-deleted.
"""

from datetime import datetime, date

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_name = db.Column(db.String(150), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='TECH')  # TECH | ADMIN
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    def to_dict(self):
        # password_hash deliberately left out
        return {
            'id': self.id,
            'userName': self.user_name,
            'role': self.role,
            'active': self.active,
            'createdAt': self.created_at,
        }

    def __repr__(self):
        return f'<User {self.id}: {self.user_name}>'


class ModelPreset(db.Model):
    __tablename__ = 'model_presets'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    device_type = db.Column(db.String(20), nullable=False, default='LAPTOP')  # LAPTOP | DESKTOP
    brand = db.Column(db.String(100), nullable=False)
    model = db.Column(db.String(100), nullable=False)
    preset_label = db.Column(db.String(255), nullable=False)
    default_cpu = db.Column(db.String(150), nullable=False)
    default_ram_gb = db.Column(db.Integer, nullable=False)
    default_ssd_gb = db.Column(db.Integer, nullable=False)
    touch_default = db.Column(db.String(20), nullable=False, default='NO_TOUCH')  # TOUCH | NO_TOUCH | BROKEN
    default_observations = db.Column(db.Text, nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    created_by = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'deviceType': self.device_type,
            'brand': self.brand,
            'model': self.model,
            'presetLabel': self.preset_label,
            'defaultCpu': self.default_cpu,
            'defaultRamGb': self.default_ram_gb,
            'defaultSsdGb': self.default_ssd_gb,
            'touchDefault': self.touch_default,
            'defaultObservations': self.default_observations,
            'active': self.active,
            'createdByUserId': self.created_by_user_id,
            'createdAt': self.created_at,
        }

    def __repr__(self):
        return f'<ModelPreset {self.id}: {self.preset_label}>'


class Project(db.Model):
    __tablename__ = 'projects'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(255), nullable=False)
    created_on = db.Column(db.Date, nullable=False, default=date.today)
    device_type = db.Column(db.String(20), nullable=False, default='LAPTOP')
    status = db.Column(db.String(20), nullable=False, default='OPEN')  # OPEN | CLOSED
    created_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    created_by = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'createdOn': self.created_on,
            'deviceType': self.device_type,
            'status': self.status,
            'createdByUserId': self.created_by_user_id,
        }

    def __repr__(self):
        return f'<Project {self.id}: {self.name}>'


class LaptopGrade(db.Model):
    __tablename__ = 'laptop_grades'
    __table_args__ = (
        db.UniqueConstraint('project_id', 'serial_number', name='uq_laptop_grades_project_serial'),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    serial_number = db.Column(db.String(100), nullable=False)
    # snapshot fields, copied from the preset unless typed in
    brand = db.Column(db.String(100), nullable=False)
    model = db.Column(db.String(100), nullable=False)
    cpu = db.Column(db.String(150), nullable=False)
    ram_gb = db.Column(db.Integer, nullable=False)
    ssd_gb = db.Column(db.Integer, nullable=False)
    touch_status = db.Column(db.String(20), nullable=False, default='NO_TOUCH')
    touchscreen = db.Column(db.Boolean, nullable=False, default=False)  # legacy: touch_status == TOUCH
    battery_health_percent = db.Column(db.Integer, nullable=True)
    observations = db.Column(db.Text, nullable=False)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False)
    preset_id = db.Column(db.Integer, db.ForeignKey('model_presets.id'), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)

    project = db.relationship('Project')
    preset = db.relationship('ModelPreset')
    created_by = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'serialNumber': self.serial_number,
            'brand': self.brand,
            'model': self.model,
            'cpu': self.cpu,
            'ramGb': self.ram_gb,
            'ssdGb': self.ssd_gb,
            'touchStatus': self.touch_status,
            'touchscreen': self.touchscreen,
            'batteryHealthPercent': self.battery_health_percent,
            'observations': self.observations,
            'projectId': self.project_id,
            'presetId': self.preset_id,
            'createdByUserId': self.created_by_user_id,
            'createdAt': self.created_at,
        }

    def __repr__(self):
        return f'<LaptopGrade {self.id}: {self.serial_number}>'
