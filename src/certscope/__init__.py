"""Examine and verify X.509 certificates from files, key stores and TLS servers."""

__version__ = '1.4.0'

from .errors import (BadPassword, CertscopeError, ConfigError, ConnectError, DecodeError,
                     MalformedContainer, MalformedPkcs7, ParseError, UnknownFormat)
from .loader import CertificateLoader, load_certificates
from .models import CertificateRecord, ContainerBlock, VerifyError, VerifyResult
from .passwords import PasswordResolver
from .verifier import ChainVerifier, verify
