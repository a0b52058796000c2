"""deepchat - multi-agent deliberation chat."""

__version__ = "0.1.0"
__author__ = "deepchat Contributors"

from .config import Config
from .orchestrator.pipeline import PipelineOrchestrator, StageStatus
from .state.conversation import ConversationHistory, Role, Turn

__all__ = ["Config", "ConversationHistory", "PipelineOrchestrator", "Role", "StageStatus", "Turn"]
