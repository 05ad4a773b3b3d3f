"""Exception hierarchy for certscope.

Decoding problems are exceptions; verification problems are not (they are
reported through ``VerifyResult.error``).
"""


class CertscopeError(Exception):
    """Base class for every error raised by certscope"""


class DecodeError(CertscopeError):
    """Input could not be turned into certificates"""


class UnknownFormat(DecodeError):
    """No decoder recognizes the input"""


class MalformedContainer(DecodeError):
    """Structural corruption in PEM/DER/PKCS#7/PKCS#12/keystore data"""


class MalformedPkcs7(MalformedContainer):
    """The PKCS#7 envelope violates the signed-data structure"""


class BadPassword(DecodeError):
    """Authentication failed on an encrypted container.

    Raised for a wrong password as well as for a failed MAC or integrity
    digest, so callers may re-prompt.
    """

    def __init__(self, message: str = "incorrect password", alias: str = ""):
        self.alias = alias
        if alias:
            message = f"{message} for entry [{alias}]"
        super().__init__(message)


class ParseError(DecodeError):
    """A certificate or one of its fields could not be decoded"""


class ConnectError(CertscopeError):
    """Could not obtain a certificate chain from a remote endpoint"""


class ConfigError(CertscopeError):
    """Configuration file is unreadable or invalid"""
