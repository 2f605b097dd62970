"""
Version Sync Workflow.

Pushes a newly created version to the automation's linked repository. A single
attempt: failures are recorded on the version and retried by the user.
"""

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from src.flowsmith.temporal.activities import sync_version


@workflow.defn(name="VersionSyncWorkflow")
class VersionSyncWorkflow:
    @workflow.run
    async def run(self, version_id: str) -> str:
        return await workflow.execute_activity(
            sync_version,
            version_id,
            start_to_close_timeout=timedelta(minutes=2),
            retry_policy=RetryPolicy(maximum_attempts=1),
        )
