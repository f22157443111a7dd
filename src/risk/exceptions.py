class RiskEngineError(Exception):
    pass


class InvalidTokenIdError(RiskEngineError, ValueError):
    pass
