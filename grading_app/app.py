import logging
import os

from flask import Flask, Response, g, redirect, render_template, request, session, url_for
from flask_login import current_user, login_required

from . import config as app_config
from .auth import admin_required, authenticate, login_manager, login_user, logout_user, refresh_session
from .database import GradingStore, init_db
from .export import export_filename, grades_to_csv
from .models import db
from .validation import GradingError, clean_str


def setup_logging(level=logging.INFO):
    """Setup logging configuration"""
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def get_store():
    return g.store


def create_app(overrides=None):
    """Build the Flask app, open the database and provision the initial admin."""
    template_dir = os.path.join(os.path.dirname(__file__), 'templates')
    app = Flask(__name__, template_folder=template_dir)

    app.config.update(
        SECRET_KEY=app_config.SECRET_KEY,
        SQLALCHEMY_DATABASE_URI=app_config.DATABASE_URL,
        INITIAL_ADMIN_USER=app_config.INITIAL_ADMIN_USER,
        INITIAL_ADMIN_PASS=app_config.INITIAL_ADMIN_PASS,
        SESSION_DURATION=app_config.SESSION_DURATION,
        SESSION_ACTIVE_DURATION=app_config.SESSION_ACTIVE_DURATION,
        PERMANENT_SESSION_LIFETIME=app_config.SESSION_DURATION,
    )
    if overrides:
        app.config.update(overrides)

    uri = app.config['SQLALCHEMY_DATABASE_URI']
    if uri.startswith('sqlite:///') and ':memory:' not in uri:
        os.makedirs(os.path.dirname(uri[len('sqlite:///'):]) or '.', exist_ok=True)
    elif not uri.startswith('sqlite'):
        app.config.setdefault('SQLALCHEMY_ENGINE_OPTIONS', {
            'pool_size': app_config.DB_POOL_SIZE,
            'max_overflow': 0,
            'pool_pre_ping': True,
        })

    db.init_app(app)
    login_manager.init_app(app)
    store = GradingStore(db.session)
    app.extensions['grading_store'] = store

    init_db(app, store)
    app.logger.info("Database initialized successfully")

    register_hooks(app)
    register_routes(app)
    return app


def register_hooks(app):
    @app.before_request
    def load_request_state():
        g.store = app.extensions['grading_store']
        refresh_session()

        # current project for navbar/status
        g.current_project = None
        project_id = session.get('current_project_id')
        if not project_id:
            return
        try:
            project = g.store.get_project_by_id(project_id)
        except Exception as e:
            app.logger.warning(f"Unable to load current project {project_id}: {e}")
            return
        if project is None:
            session.pop('current_project_id', None)
        g.current_project = project

    @app.context_processor
    def inject_session():
        return {'current_project': g.get('current_project')}

    @app.errorhandler(404)
    def not_found(e):
        return render_template('404.html'), 404


def _error_page(message, status=500):
    return render_template('500.html', message=message), status


def register_routes(app):

    @app.route('/')
    def home():
        return render_template('home.html')

    # ------------------------------------------------------------
    # Login
    # ------------------------------------------------------------
    @app.route('/login', methods=['GET', 'POST'])
    def login():
        if request.method == 'GET':
            return render_template('login.html', error_message=None, user_name='')

        user_name = clean_str(request.form.get('userName'))
        password = request.form.get('password', '')
        try:
            user = authenticate(get_store(), user_name, password)
        except Exception as e:
            app.logger.error(f"Login error: {e}")
            return _error_page(f"Login error: {e}")

        if not user:
            app.logger.info(f"Failed login for '{user_name}'")
            return render_template(
                'login.html',
                error_message="Invalid username or password (or user disabled).",
                user_name=user_name,
            )

        login_user(user)
        app.logger.info(f"User {user['userName']} logged in")
        return redirect(url_for('new_grade'))

    @app.route('/logout')
    def logout():
        logout_user()
        return redirect(url_for('home'))

    # ------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------
    @app.route('/projects')
    @login_required
    def projects():
        try:
            return render_template('projects.html', projects=get_store().list_projects(),
                                   message=request.args.get('msg', ''))
        except Exception as e:
            app.logger.error(f"Unable to load projects: {e}")
            return _error_page(f"Unable to load projects: {e}")

    @app.route('/projects/new', methods=['GET', 'POST'])
    @admin_required
    def new_project():
        if request.method == 'GET':
            return render_template('addProject.html', error_message=None, form={})
        try:
            project = get_store().create_project(current_user.to_dict(), request.form)
        except GradingError as e:
            return render_template('addProject.html', error_message=str(e), form=request.form), 400
        except Exception as e:
            app.logger.error(f"Unable to create project: {e}")
            return _error_page(f"Unable to create project: {e}")
        app.logger.info(f"Project {project['id']} '{project['name']}' created")
        return redirect(url_for('projects', msg='Project created'))

    @app.route('/projects/<project_id>/open')
    @login_required
    def open_project(project_id):
        try:
            project = get_store().get_project_by_id(project_id)
        except Exception as e:
            app.logger.error(f"Unable to open project: {e}")
            return _error_page(f"Unable to open project: {e}")
        if not project:
            return redirect(url_for('projects', msg='Project not found'))
        if project['status'] != 'OPEN':
            return redirect(url_for('projects', msg='Project is closed'))
        session['current_project_id'] = project['id']
        return redirect(url_for('new_grade'))

    @app.route('/projects/<project_id>/close')
    @admin_required
    def close_project(project_id):
        try:
            get_store().set_project_status(project_id, 'CLOSED')
        except Exception as e:
            app.logger.error(f"Unable to close project: {e}")
            return _error_page(f"Unable to close project: {e}")
        if str(session.get('current_project_id')) == str(project_id):
            session.pop('current_project_id', None)
        app.logger.info(f"Project {project_id} closed")
        return redirect(url_for('projects', msg='Project closed'))

    @app.route('/projects/<project_id>/export.csv')
    @admin_required
    def export_project_csv(project_id):
        try:
            project = get_store().get_project_by_id(project_id)
            if not project:
                return _error_page("Project not found.", 404)
            body = grades_to_csv(get_store().list_grades_for_export(project['id']))
        except Exception as e:
            app.logger.error(f"Unable to export CSV: {e}")
            return _error_page(f"Unable to export CSV: {e}")
        return Response(
            body,
            mimetype='text/csv',
            headers={'Content-Disposition': f"attachment; filename={export_filename(project)}"},
        )

    @app.route('/projects/<project_id>/export.xlsx')
    @admin_required
    def export_project_xlsx(project_id):
        return _error_page("XLSX export not implemented yet.", 501)

    # ------------------------------------------------------------
    # Presets
    # ------------------------------------------------------------
    @app.route('/presets')
    @login_required
    def presets():
        filters = {
            'deviceType': request.args.get('deviceType', ''),
            'brand': request.args.get('brand', ''),
            'model': request.args.get('model', ''),
        }
        try:
            store = get_store()
            options = store.preset_filter_options(store.list_presets_detailed({}, False))
            preset_rows = store.list_presets_detailed(filters, False)
        except Exception as e:
            app.logger.error(f"Unable to load presets: {e}")
            return _error_page(f"Unable to load presets: {e}")
        return render_template('presets.html', presets=preset_rows, filters=filters, **options)

    @app.route('/presets/add', methods=['GET', 'POST'])
    @login_required
    def add_preset():
        if request.method == 'GET':
            return render_template('addPreset.html', error_message=None, form={})
        try:
            preset = get_store().create_preset(current_user.to_dict(), request.form)
        except GradingError as e:
            return render_template('addPreset.html', error_message=str(e), form=request.form), 400
        except Exception as e:
            app.logger.error(f"Unable to create preset: {e}")
            return _error_page(f"Unable to create preset: {e}")
        app.logger.info(f"Preset {preset['id']} '{preset['presetLabel']}' created")
        return redirect(url_for('presets'))

    @app.route('/presets/from-unit', methods=['POST'])
    @login_required
    def preset_from_unit():
        form = request.form.to_dict()
        project = g.current_project
        if project and not form.get('deviceType'):
            form['deviceType'] = project['deviceType']
        try:
            preset = get_store().create_preset_from_unit(current_user.to_dict(), form)
        except GradingError as e:
            return redirect(url_for('new_grade', msg=str(e)))
        except Exception as e:
            app.logger.error(f"Unable to create preset from unit: {e}")
            return redirect(url_for('new_grade', msg=str(e)))
        return redirect(url_for('new_grade', presetId=preset['id'], msg='Preset created'))

    @app.route('/presets/deactivate/<preset_id>')
    @admin_required
    def deactivate_preset(preset_id):
        try:
            get_store().set_preset_active(preset_id, False)
        except Exception as e:
            app.logger.error(f"Unable to deactivate preset: {e}")
            return _error_page(f"Unable to deactivate preset: {e}")
        return redirect(url_for('presets'))

    @app.route('/presets/activate/<preset_id>')
    @admin_required
    def activate_preset(preset_id):
        try:
            get_store().set_preset_active(preset_id, True)
        except Exception as e:
            app.logger.error(f"Unable to activate preset: {e}")
            return _error_page(f"Unable to activate preset: {e}")
        return redirect(url_for('presets'))

    # ------------------------------------------------------------
    # Grades
    # ------------------------------------------------------------
    @app.route('/grades/new', methods=['GET', 'POST'])
    @login_required
    def new_grade():
        project = g.current_project
        if not project:
            return redirect(url_for('projects', msg='Select a project first'))
        if project['status'] != 'OPEN':
            return redirect(url_for('projects', msg='Selected project is closed'))

        store = get_store()
        context = {'project': project, 'error_message': None, 'success_message': None}
        status = 200
        try:
            if request.method == 'GET':
                context['success_message'] = request.args.get('msg') or None
                context['form'] = {'presetId': request.args.get('presetId', '')}
            else:
                try:
                    grade = store.create_grade(current_user.to_dict(), request.form, project)
                    app.logger.info(f"Grade {grade['id']} ({grade['serialNumber']}) saved in project {project['id']}")
                    context['success_message'] = "Saved"
                    context['form'] = {'presetId': request.form.get('presetId', '')}
                except GradingError as e:
                    context['error_message'] = str(e)
                    context['form'] = request.form
                    status = 400
            context['presets'] = store.list_presets_filtered({'deviceType': project['deviceType']}, True)
        except Exception as e:
            app.logger.error(f"Unable to load new grade page: {e}")
            return _error_page(f"Unable to load new grade page: {e}")
        return render_template('addGrade.html', **context), status

    @app.route('/grades')
    @login_required
    def grades():
        filters = {
            'technician': request.args.get('technician', ''),
            'fromDate': request.args.get('fromDate', ''),
            'toDate': request.args.get('toDate', ''),
            'presetId': request.args.get('presetId', ''),
            'projectId': request.args.get('projectId', ''),
            'deviceType': request.args.get('deviceType', ''),
            'model': request.args.get('model', ''),
            'onlyMineToday': request.args.get('onlyMineToday') == '1',
        }
        user = current_user.to_dict()
        store = get_store()
        context = {'presets': [], 'users': [], 'projects': [], 'deviceTypes': [], 'models': []}
        try:
            if user['role'] == 'ADMIN':
                context['presets'] = store.list_presets(False)
                context['users'] = store.list_users()
                context['projects'] = store.list_projects()
                context['deviceTypes'] = sorted({p['deviceType'] for p in context['projects']})
                context['models'] = sorted({p['model'] for p in context['presets'] if p['model']})
                grade_rows = store.list_grades_admin_filtered(filters)
            else:
                project = g.current_project
                if not project:
                    return redirect(url_for('projects', msg='Select a project first'))
                if project['status'] != 'OPEN':
                    return redirect(url_for('projects', msg='Selected project is closed'))
                grade_rows = store.list_grades_for_project(
                    project['id'], only_mine_today=filters['onlyMineToday'], user_id=user['id'])
        except Exception as e:
            app.logger.error(f"Unable to load grades: {e}")
            return _error_page(f"Unable to load grades: {e}")
        return render_template('grades.html', grades=grade_rows, filters=filters, **context)

    # ------------------------------------------------------------
    # Users (admin)
    # ------------------------------------------------------------
    @app.route('/admin/users')
    @admin_required
    def users():
        try:
            return render_template('users.html', users=get_store().list_users(), error_message=None)
        except Exception as e:
            app.logger.error(f"Unable to load users: {e}")
            return _error_page(f"Unable to load users: {e}")

    @app.route('/admin/users/add', methods=['POST'])
    @admin_required
    def add_user():
        store = get_store()
        try:
            user = store.create_user(
                request.form.get('userName'),
                request.form.get('password', ''),
                request.form.get('role', 'TECH'),
            )
        except GradingError as e:
            return render_template('users.html', users=store.list_users(), error_message=str(e)), 400
        except Exception as e:
            app.logger.error(f"Unable to create user: {e}")
            return _error_page(f"Unable to create user: {e}")
        app.logger.info(f"User {user['userName']} created with role {user['role']}")
        return redirect(url_for('users'))

    @app.route('/admin/users/disable/<user_id>')
    @admin_required
    def disable_user(user_id):
        try:
            get_store().set_user_active(user_id, False)
        except Exception as e:
            app.logger.error(f"Unable to disable user: {e}")
            return _error_page(f"Unable to disable user: {e}")
        return redirect(url_for('users'))

    @app.route('/admin/users/enable/<user_id>')
    @admin_required
    def enable_user(user_id):
        try:
            get_store().set_user_active(user_id, True)
        except Exception as e:
            app.logger.error(f"Unable to enable user: {e}")
            return _error_page(f"Unable to enable user: {e}")
        return redirect(url_for('users'))

    @app.route('/admin/users/role/<user_id>')
    @admin_required
    def set_user_role(user_id):
        try:
            get_store().set_user_role(user_id, request.args.get('role', 'TECH'))
        except Exception as e:
            app.logger.error(f"Unable to set role: {e}")
            return _error_page(f"Unable to set role: {e}")
        return redirect(url_for('users'))


# Run the application
if __name__ == '__main__':
    setup_logging()
    create_app().run(debug=False, port=app_config.PORT, threaded=True)
