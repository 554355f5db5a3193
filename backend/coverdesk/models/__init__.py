from coverdesk.models.absence_record import AbsenceKind, AbsenceRecord, AbsenceStatus  # noqa: F401
from coverdesk.models.coverage_assignment import CoverageAssignment  # noqa: F401
from coverdesk.models.coverage_request import CoverageRequest, CoverageRequestStatus  # noqa: F401
from coverdesk.models.daily_pool import DailyPoolEntry, PoolEntrySource  # noqa: F401
from coverdesk.models.substitution_log import SubstitutionKind, SubstitutionLog  # noqa: F401
