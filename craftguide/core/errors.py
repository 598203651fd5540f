"""Domain errors raised by the guidance and analytics services.

Every error is recoverable by the caller; routes translate them into
HTTP responses and nothing here is fatal to the process.
"""


class CraftGuideError(Exception):
    """Base class for service-level failures."""


class TemplateNotFound(CraftGuideError):
    def __init__(self, template_id: str):
        super().__init__(f"Template {template_id} not found")
        self.template_id = template_id


class NoActiveGuidance(CraftGuideError):
    def __init__(self, user_id: str):
        super().__init__(f"No active guidance for user {user_id}")
        self.user_id = user_id


class UnknownStep(CraftGuideError):
    def __init__(self, step_id: str, template_id: str):
        super().__init__(f"Step {step_id} not found in template {template_id}")
        self.step_id = step_id
        self.template_id = template_id


class InvalidFeedback(CraftGuideError):
    pass


class DataUnavailable(CraftGuideError):
    """The record store could not be read (unreachable or timed out)."""


class InvalidEvent(CraftGuideError):
    pass
