"""
Every failure raised by bitvault is one of the classes below, so callers can
match on the kind of failure instead of on message text.
"""


class BitvaultError(Exception):
    pass


class ScriptError(BitvaultError):
    """A script could not be built, e.g. a push exceeded the element size limit."""


class TreeBuildError(BitvaultError):
    """The taproot tree could not be built from the given leaves and key."""


class SighashError(BitvaultError):
    """Missing or inconsistent previous-output data for the signature hash."""


class SigningError(BitvaultError):
    """A signature could not be produced or did not verify."""


class ExtractError(BitvaultError):
    """A transaction was extracted before every input had a witness."""


class ExternalError(BitvaultError):
    """Failure reported by a collaborator outside of the core (store, node)."""


class StoreError(ExternalError):
    pass


class LedgerError(ExternalError):
    def __init__(self, msg: str, code: int | None = None):
        super().__init__(msg)
        self.code = code
