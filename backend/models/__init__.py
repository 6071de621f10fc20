"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  LeadFlow CRM - Models Package                                               ║
║                                                                              ║
║  Exports tous les modèles pour import facile                                 ║
║  from models import LeadCreate, TaskComplete, RequesterContext, etc.         ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from .user import (
    Privilege,
    SecondPrivilege,
    RequesterContext,
    UserCreate,
)

from .lead import (
    EnquireSource,
    EnquireStatus,
    Purpose,
    LeadType,
    CallStatus,
    TERMINAL_STATUSES,
    LeadCreate,
    LeadStatusUpdate,
    LeadTransfer,
    LeadFilter,
)

from .task import (
    TaskCategory,
    TaskCreate,
    TaskComplete,
    TaskFilter,
)

from .activity import (
    ActivityType,
    NoteCreate,
    ActivityFilter,
    ReportFilter,
)

from .target import (
    TargetSet,
    TargetFilter,
)

from .leave import (
    LeaveStatus,
    LeaveApply,
    LeaveStatusUpdate,
    LeaveFilter,
)
