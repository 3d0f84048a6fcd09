from flask import Blueprint, request, jsonify, current_app
from errors import (
    ValidationError, NotFoundError, ConflictError,
    validate_required, validate_enum, parse_date
)
from models import Availability, TimelinePhase, Milestone, ProjectDependency
from database import STORE_EXTENSION

api = Blueprint('api', __name__)


def get_store():
    """Resource store of the current app - call this inside route functions"""
    return current_app.extensions[STORE_EXTENSION]


# Error handling decorator
def handle_errors(f):
    """Decorator to handle common errors and return JSON responses"""
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (ValidationError, NotFoundError, ConflictError):
            # These are already handled by the global error handler
            raise
        except Exception as e:
            current_app.logger.error(f"Unexpected error in {f.__name__}: {str(e)}")
            raise  # Let the global error handler deal with it
    wrapper.__name__ = f.__name__
    return wrapper


def get_json_body():
    """Request body as a dict; anything else is a validation error"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def get_date_range_args(required=True):
    """Parse start_date/end_date query parameters"""
    start_date = request.args.get('start_date')
    end_date = request.args.get('end_date')

    if required and (not start_date or not end_date):
        raise ValidationError("start_date and end_date parameters are required")

    return (
        parse_date(start_date, 'start_date') if start_date else None,
        parse_date(end_date, 'end_date') if end_date else None
    )


# Payload parsers

def parse_availability(data):
    """Build an Availability override from request data"""
    validate_required(data, ['date', 'type'])
    validate_enum(data['type'], Availability.TYPES, 'type')
    return Availability(
        date=parse_date(data['date'], 'date'),
        type=data['type'],
        hours=data.get('hours', 0.0),
        description=data.get('description')
    )


def parse_phase(data):
    validate_required(data, ['id', 'name', 'start_date', 'end_date'])
    return TimelinePhase(
        id=data['id'],
        name=data['name'],
        phase=data.get('phase'),
        start_date=parse_date(data['start_date'], 'start_date'),
        end_date=parse_date(data['end_date'], 'end_date'),
        progress=data.get('progress', 0.0),
        tasks=data.get('tasks')
    )


def parse_milestone(data):
    validate_required(data, ['id', 'name', 'due_date'])
    completed_date = data.get('completed_date')
    return Milestone(
        id=data['id'],
        name=data['name'],
        description=data.get('description', ''),
        due_date=parse_date(data['due_date'], 'due_date'),
        completed_date=parse_date(completed_date, 'completed_date') if completed_date else None,
        status=data.get('status'),
        dependencies=data.get('dependencies')
    )


def parse_dependency(data):
    validate_required(data, ['id', 'from_task_id', 'to_task_id'])
    lag = data.get('lag', 0)
    if not isinstance(lag, int) or isinstance(lag, bool):
        raise ValidationError("lag must be a whole number of days", field='lag')
    return ProjectDependency(
        id=data['id'],
        from_task_id=data['from_task_id'],
        to_task_id=data['to_task_id'],
        type=data.get('type', ProjectDependency.FINISH_TO_START),
        lag=lag
    )


def _list_payload(data, key):
    items = data.get(key) or []
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise ValidationError(f"{key} must be a list of objects", field=key)
    return items


def parse_allocation_id(value, field_name):
    """Allocation ids are integers; JSON strings of digits are accepted"""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    raise ValidationError(f"{field_name} must be an integer allocation id", field=field_name)


# TEAM MEMBER ENDPOINTS

@api.route('/team-members', methods=['GET'])
@handle_errors
def get_team_members():
    """Get team members with optional department/skill filtering"""
    store = get_store()

    department = request.args.get('department')
    skills = [skill.strip() for skill in request.args.get('skills', '').split(',') if skill.strip()]
    include_inactive = request.args.get('include_inactive', 'false').lower() == 'true'

    members = store.get_team_members(department=department, skills=skills, include_inactive=include_inactive)
    return jsonify([member.to_dict(include_availability=False) for member in members])


@api.route('/team-members', methods=['POST'])
@handle_errors
def create_team_member():
    """Register a new team member"""
    store = get_store()
    data = get_json_body()

    validate_required(data, ['id', 'name', 'role', 'department', 'hourly_rate', 'capacity'])

    skills = data.get('skills') or []
    if not isinstance(skills, list):
        raise ValidationError("skills must be a list", field='skills')

    member = store.create_team_member(
        member_id=data['id'],
        name=data['name'],
        role=data['role'],
        department=data['department'],
        hourly_rate=data['hourly_rate'],
        capacity=data['capacity'],
        skills=skills,
        email=data.get('email')
    )
    return jsonify(member.to_dict()), 201


@api.route('/team-members/<member_id>', methods=['GET'])
@handle_errors
def get_team_member(member_id):
    """Get a specific team member"""
    return jsonify(get_store().get_team_member(member_id).to_dict())


@api.route('/team-members/<member_id>', methods=['DELETE'])
@handle_errors
def deactivate_team_member(member_id):
    """Soft-disable a team member"""
    member = get_store().deactivate_team_member(member_id)
    return jsonify({'message': 'Team member deactivated successfully', 'team_member': member.to_dict()})


@api.route('/team-members/<member_id>/availability', methods=['PUT'])
@handle_errors
def replace_availability(member_id):
    """Replace every availability override of a team member"""
    store = get_store()
    data = get_json_body()

    overrides = [parse_availability(item) for item in _list_payload(data, 'availability')]
    member = store.update_team_member_availability(member_id, overrides)
    return jsonify(member.to_dict())


@api.route('/team-members/<member_id>/availability', methods=['POST'])
@handle_errors
def add_availability(member_id):
    """Add or replace a single availability override"""
    store = get_store()
    member = store.set_availability(member_id, parse_availability(get_json_body()))
    return jsonify(member.to_dict()), 201


# PROJECT ENDPOINTS

@api.route('/projects', methods=['GET'])
@handle_errors
def get_projects():
    """Get all registered projects"""
    projects = get_store().get_projects(status=request.args.get('status'))
    return jsonify([project.to_dict() for project in projects])


@api.route('/projects', methods=['POST'])
@handle_errors
def create_project():
    """Register a project"""
    data = get_json_body()
    validate_required(data, ['id', 'name'])

    project = get_store().create_project(data['id'], data['name'], data.get('status', 'planning'))
    return jsonify(project.to_dict()), 201


# ALLOCATION ENDPOINTS

@api.route('/allocations', methods=['GET'])
@handle_errors
def get_allocations():
    """Get allocations filtered by project, team member and/or date range overlap"""
    store = get_store()
    start_date, end_date = get_date_range_args(required=False)

    allocations = store.list_allocations(
        project_id=request.args.get('project_id'),
        team_member_id=request.args.get('team_member_id'),
        start_date=start_date,
        end_date=end_date
    )
    return jsonify([allocation.to_dict() for allocation in allocations])


@api.route('/allocations', methods=['POST'])
@handle_errors
def create_allocation():
    """Create a new allocation; rejected with 409 if it would overallocate"""
    store = get_store()
    data = get_json_body()

    validate_required(data, ['project_id', 'team_member_id', 'start_date', 'end_date', 'allocated_hours', 'role'])

    allocation = store.create_allocation(
        project_id=data['project_id'],
        team_member_id=data['team_member_id'],
        start_date=parse_date(data['start_date'], 'start_date'),
        end_date=parse_date(data['end_date'], 'end_date'),
        allocated_hours=data['allocated_hours'],
        role=data['role'],
        notes=data.get('notes')
    )
    return jsonify(allocation.to_dict()), 201


@api.route('/allocations/check-conflicts', methods=['POST'])
@handle_errors
def check_allocation_conflicts():
    """
    Pre-validate a proposed allocation for overallocation conflicts.

    Request Body:
        team_member_id (required): ID of the team member
        start_date (required): Proposed start date (YYYY-MM-DD)
        end_date (required): Proposed end date (YYYY-MM-DD)
        allocated_hours (required): Proposed total hours
        exclude_allocation_id (optional): Allocation ID to exclude (for updates)
    """
    store = get_store()
    data = get_json_body()

    validate_required(data, ['team_member_id', 'start_date', 'end_date', 'allocated_hours'])

    exclude_allocation_id = data.get('exclude_allocation_id')
    if exclude_allocation_id is not None:
        exclude_allocation_id = parse_allocation_id(exclude_allocation_id, 'exclude_allocation_id')

    conflicts = store.check_conflicts(
        team_member_id=data['team_member_id'],
        start_date=parse_date(data['start_date'], 'start_date'),
        end_date=parse_date(data['end_date'], 'end_date'),
        allocated_hours=data['allocated_hours'],
        exclude_allocation_id=exclude_allocation_id
    )
    return jsonify({
        'has_conflicts': bool(conflicts),
        'conflicts': [conflict.to_dict() for conflict in conflicts]
    })


@api.route('/allocations/<int:allocation_id>', methods=['GET'])
@handle_errors
def get_allocation_by_id(allocation_id):
    """Get a specific allocation by ID"""
    return jsonify(get_store().get_allocation(allocation_id).to_dict())


@api.route('/allocations/<int:allocation_id>', methods=['PUT'])
@handle_errors
def update_allocation(allocation_id):
    """Partially update an allocation; window/hour changes are re-validated"""
    store = get_store()
    data = get_json_body()

    fields = dict(data)
    for field in ('start_date', 'end_date'):
        if field in fields:
            fields[field] = parse_date(fields[field], field)

    allocation = store.update_allocation(allocation_id, **fields)
    return jsonify(allocation.to_dict())


@api.route('/allocations/<int:allocation_id>', methods=['DELETE'])
@handle_errors
def delete_allocation(allocation_id):
    """Delete an allocation"""
    get_store().delete_allocation(allocation_id)
    return jsonify({'message': 'Allocation deleted successfully'})


@api.route('/allocations/<int:allocation_id>/actual-hours', methods=['POST'])
@handle_errors
def log_actual_hours(allocation_id):
    """Record hours worked against an allocation"""
    data = get_json_body()
    validate_required(data, ['hours'])

    allocation = get_store().log_actual_hours(allocation_id, data['hours'])
    return jsonify(allocation.to_dict())


# CONFLICT AND REPORTING ENDPOINTS

@api.route('/conflicts', methods=['GET'])
@handle_errors
def get_conflicts():
    """
    List overallocated days across the team.

    Query Parameters:
        start_date (optional): Start date (YYYY-MM-DD)
        end_date (optional): End date (YYYY-MM-DD)
    """
    start_date, end_date = get_date_range_args(required=False)
    conflicts = get_store().get_resource_conflicts(start_date, end_date)
    return jsonify([conflict.to_dict() for conflict in conflicts])


@api.route('/reports/capacity', methods=['GET'])
@handle_errors
def get_capacity_report():
    """
    Per-member capacity and utilization.

    Query Parameters:
        start_date (required): Start date (YYYY-MM-DD)
        end_date (required): End date (YYYY-MM-DD)
    """
    start_date, end_date = get_date_range_args()
    return jsonify(get_store().get_capacity_report(start_date, end_date))


@api.route('/reports/workload', methods=['GET'])
@handle_errors
def get_workload_distribution():
    """
    Team workload per week or month.

    Query Parameters:
        start_date (required): Start date (YYYY-MM-DD)
        end_date (required): End date (YYYY-MM-DD)
        interval (optional): week or month
    """
    start_date, end_date = get_date_range_args()
    interval = request.args.get('interval', current_app.config.get('DEFAULT_WORKLOAD_INTERVAL', 'week'))
    return jsonify(get_store().get_workload_distribution(start_date, end_date, interval))


# TIMELINE ENDPOINTS

@api.route('/projects/<project_id>/timeline', methods=['POST'])
@handle_errors
def create_project_timeline(project_id):
    """Create or replace a project's timeline"""
    store = get_store()
    data = get_json_body()

    timeline = store.create_timeline(
        project_id,
        phases=[parse_phase(item) for item in _list_payload(data, 'phases')],
        milestones=[parse_milestone(item) for item in _list_payload(data, 'milestones')],
        dependencies=[parse_dependency(item) for item in _list_payload(data, 'dependencies')]
    )
    return jsonify(timeline.to_dict()), 201


@api.route('/projects/<project_id>/timeline', methods=['GET'])
@handle_errors
def get_project_timeline(project_id):
    """Get a project's timeline, flagging milestones past their due date"""
    store = get_store()
    timeline = store.get_timeline(project_id)
    if timeline is None:
        raise NotFoundError("Timeline for project", project_id)

    data = timeline.to_dict()
    data['overdue_milestones'] = [milestone.id for milestone in timeline.overdue_milestones(store.today())]
    return jsonify(data)


@api.route('/projects/<project_id>/timeline/workload', methods=['GET'])
@handle_errors
def get_project_phase_workload(project_id):
    """Allocated hours per timeline phase"""
    return jsonify(get_store().get_phase_workload(project_id))
