class ReservationError(ValueError):
    pass


class InvalidReservation(ReservationError):
    """The candidate interval is malformed or cannot be booked."""


class Exhausted(InvalidReservation):
    """No free slot was found within the deferral horizon."""


class NotFound(ReservationError, LookupError):
    """A referenced resource, subject or reservation id does not exist."""


class Inconsistent(ReservationError):
    """Denormalized lists and the canonical store disagree after a removal."""


class ReservationStorageError(RuntimeError):
    pass
