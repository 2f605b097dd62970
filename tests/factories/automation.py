"""Factories for automations, schedules and execution records."""

from polyfactory import Use

from src.flowsmith.models import (
    Automation,
    AutomationStatus,
    ExecutionRecord,
    ExecutionStatus,
    RunState,
    Schedule,
    TriggerMode,
    TriggerType,
)
from tests.factories.base import BaseFactory, generate_uuid, utc_now


class AutomationFactory(BaseFactory):
    """Factory for a single-file automation, idle with no versions yet."""

    __model__ = Automation

    id = Use(generate_uuid)
    title = Use(lambda: f"Automation {generate_uuid().hex[-8:]}")
    description = None
    status = AutomationStatus.LIVE.value
    trigger_mode = TriggerMode.MANUAL.value
    trigger_enabled = False
    code = "console.log('hello')"
    files = None
    dependencies = Use(list)
    env_var_names = Use(list)
    runtime_environment = None
    cost = None
    api_key_hash = None
    owner_user_id = "user-1"
    admin_user_ids = Use(list)
    doc_version = 1
    run_state = RunState.IDLE.value
    current_execution_id = None
    created_at = Use(utc_now)
    updated_at = Use(utc_now)
    deleted_at = None


class ScheduleFactory(BaseFactory):
    """Every-minute UTC schedule; pass ``automation_id``."""

    __model__ = Schedule

    id = Use(generate_uuid)
    cron_expression = "* * * * *"
    timezone = "UTC"
    runtime_environment = None
    schedule_description = None
    email_notifications_enabled = True
    email_on_completed = True
    email_on_failed = True
    notification_email = None
    created_by = "user-1"
    created_at = Use(utc_now)
    updated_at = Use(utc_now)


class ExecutionRecordFactory(BaseFactory):
    """A finished manual run; pass ``automation_id``."""

    __model__ = ExecutionRecord

    id = Use(generate_uuid)
    schedule_id = None
    status = ExecutionStatus.SUCCESS.value
    trigger_type = TriggerType.MANUAL.value
    started_at = Use(utc_now)
    ended_at = None
    duration_ms = None
    exit_code = None
    error_message = None
    automation_title = "Nightly report"
    user_id = "user-1"
    user_name = "Ada Lovelace"
    user_email = "ada@example.com"
    runtime_environment = "dev"
    version = None
    cancel_requested = False
    cancel_requested_at = None
    cancel_requested_by = None
