"""Container label keys applied by reactor."""

# Every container created by reactor carries this label set to "true".
MANAGED_LABEL = "com.reactor.managed"

# Workspace containers additionally carry the workspace hash and service name.
WORKSPACE_INSTANCE_LABEL = "com.reactor.workspace.instance"
WORKSPACE_SERVICE_LABEL = "com.reactor.workspace.service"

# Disposable cleanup helpers record the scope they were started for.
CLEANUP_SCOPE_LABEL = "com.reactor.cleanup.scope"


def workspace_labels(workspace_hash: str, service: str) -> dict:
    """Labels identifying a workspace service container."""
    return {
        WORKSPACE_INSTANCE_LABEL: workspace_hash,
        WORKSPACE_SERVICE_LABEL: service,
    }
