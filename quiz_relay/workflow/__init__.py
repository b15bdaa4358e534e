from .messages import ChatGateway
from .orchestrator import WorkflowOrchestrator

__all__ = [
    'ChatGateway',
    'WorkflowOrchestrator'
]
