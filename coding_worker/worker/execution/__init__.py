"""Execution pipeline for a single coding job.

This package contains the core execution components:

- **resolver**: Request validation and session resolution (new / resume / recovery)
- **naming**: Session name and working branch name for new sessions
- **workspace**: Repository clone or update into the session root
- **adapter**: Execution capability bridge (provider payloads -> execution events)
- **postprocess**: Auto-commit of the agent's changes
- **finalizer**: Upload, terminal event, status report, cleanup
- **coordinator**: Job state machine tying the steps together
- **events**: Event fan-out (live transport, local log, remote sink)
- **transport**: Live event delivery to the submitting client
- **remote**: HTTP client for the remote session store
"""
