class FirstAidError(Exception):
    """Base class for errors raised by the first-aid core."""


class IncompleteAssessment(FirstAidError):
    """Guidance was requested before all three questions were answered."""

    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(f"assessment is incomplete, unanswered: {', '.join(self.missing)}")


class InvalidTransition(FirstAidError):
    """A session operation was called in a step that does not allow it."""


class SessionNotFound(FirstAidError):
    pass


class EnhancementError(FirstAidError):
    """The AI provider failed or returned a payload we cannot use."""


class FacilityLookupError(FirstAidError):
    """Nearby places could not be fetched; callers may retry."""
