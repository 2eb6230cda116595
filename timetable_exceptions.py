from typing import Any, Dict, Optional


class SchedulingError(ValueError):
    """Base class for errors that stop a planning run with a named cause."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(SchedulingError):
    """Raised before any solve starts when the input cannot be planned as configured."""


class InfeasibleElicitationError(ConfigurationError):
    """A lecturer owns more courses than there are time slots."""

    def __init__(self, lecturer_id: str, num_courses: int, num_slots: int):
        self.lecturer_id = lecturer_id
        super().__init__(
            f"lecturer '{lecturer_id}' has {num_courses} courses but the calendar only has {num_slots} slots",
            details={"lecturer": lecturer_id, "courses": num_courses, "slots": num_slots},
        )


class DataInfeasibilityError(SchedulingError):
    """A course fits in no room at all, so no assignment logic can place it."""

    def __init__(self, course_id: str, size: int, max_capacity: int, room_type: Optional[str] = None):
        self.course_id = course_id
        requirement = f" of type '{room_type}'" if room_type else ""
        super().__init__(
            f"course '{course_id}' has {size} students but no room{requirement} can hold it "
            f"(largest matching capacity is {max_capacity})",
            details={"course": course_id, "size": size, "max_capacity": max_capacity, "room_type": room_type},
        )


class ModelingError(RuntimeError):
    """The global assignment model was rejected or proven infeasible."""


class RepairExhaustedError(AssertionError):
    """The repair pass found no free (slot, room) for a course that passed the data check."""

    def __init__(self, course_id: str):
        self.course_id = course_id
        super().__init__(f"repair pass found no free slot/room for course '{course_id}'")
