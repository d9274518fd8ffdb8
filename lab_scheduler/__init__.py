from .errors import Exhausted, Inconsistent, InvalidReservation, NotFound, ReservationError, ReservationStorageError
from .ids import ReservationIdGenerator, get_id_generator, init_id_generator
from .interval import Interval, contains, overlaps, same_bounds, strictly_inside
from .lifecycle import IndexDivergence, ReservationLifecycle
from .records import ReservationRecord, ReservationStatus, ResourceRecord, SubjectRecord
from .resolver import Resolution, conflicts_with, find_conflicts, is_reservable, resolve
from .scheduling import HousekeepingReport, HousekeepingTimer, SchedulingService
from .yaml_store import ReservationYamlRepository

__all__ = [
	"Exhausted",
	"Inconsistent",
	"InvalidReservation",
	"NotFound",
	"ReservationError",
	"ReservationStorageError",
	"ReservationIdGenerator",
	"get_id_generator",
	"init_id_generator",
	"Interval",
	"contains",
	"overlaps",
	"same_bounds",
	"strictly_inside",
	"IndexDivergence",
	"ReservationLifecycle",
	"ReservationRecord",
	"ReservationStatus",
	"ResourceRecord",
	"SubjectRecord",
	"Resolution",
	"conflicts_with",
	"find_conflicts",
	"is_reservable",
	"resolve",
	"HousekeepingReport",
	"HousekeepingTimer",
	"SchedulingService",
	"ReservationYamlRepository",
]
