"""Terminal failures of a council run."""


class CouncilError(Exception):
    """Base class for errors that abort the whole council pipeline."""


class NoCouncilResponsesError(CouncilError):
    def __init__(self, attempted: int):
        super().__init__(f"No council members provided responses ({attempted} attempted)")
        self.attempted = attempted


class ChairmanSynthesisError(CouncilError):
    def __init__(self, model: str, reason: str):
        super().__init__(f"Chairman synthesis failed ({model}): {reason}")
        self.model = model


class LabelCapacityError(CouncilError, ValueError):
    def __init__(self, count: int, capacity: int):
        super().__init__(f"Cannot anonymize {count} responses; only {capacity} labels are available")
        self.count = count
        self.capacity = capacity
