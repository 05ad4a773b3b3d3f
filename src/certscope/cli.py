"""certscope command line interface: dump, verify and connect."""

import sys
from datetime import datetime, timezone
from typing import List, Optional

import click
from colorama import Fore, Style, init

from . import __version__
from .config import Settings, load_config
from .errors import CertscopeError
from .loader import CertificateLoader
from .log import setup_logging
from .passwords import PasswordResolver, parse_entry_passwords
from .render import (certificate_to_dict, display_certificates, display_verify_result,
                     to_json, verify_result_to_dict)
from .transport import fetch_peer_chain, parse_address
from .trust import load_bundle
from .verifier import ChainVerifier, certificate_warnings


def fail(message: str):
    click.echo(f"{Fore.RED}[!] {message}{Style.RESET_ALL}", err=True)
    sys.exit(1)


def prompt_password(alias: str) -> str:
    text = f"Enter password for entry [{alias}]" if alias else "Enter password"
    return click.prompt(text, hide_input=True, default='', show_default=False, err=True)


def build_resolver(password: Optional[str], entry_passwords) -> PasswordResolver:
    try:
        entries = parse_entry_passwords(entry_passwords)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='--entry-password')
    return PasswordResolver(default=password, entries=entries, prompt=prompt_password)


def _stdin_or(files) -> List:
    return list(files) or [click.get_binary_stream('stdin')]


def _use_color() -> bool:
    return click.get_text_stream('stdout').isatty()


def _verifier(settings: Settings, ca: Optional[str]) -> ChainVerifier:
    bundle = ca or settings.ca_bundle
    anchors = load_bundle(bundle) if bundle else None
    return ChainVerifier(anchors, settings.expiry_warning_days, settings.min_rsa_bits)


def _certificate_dicts(settings: Settings, certs, aliases=None):
    aliases = aliases or [None] * len(certs)
    now = datetime.now(timezone.utc)
    result = []
    for cert, alias in zip(certs, aliases):
        warnings = certificate_warnings(cert, now, settings.expiry_warning_days,
                                        settings.min_rsa_bits, is_root=cert.self_signed)
        result.append(certificate_to_dict(cert, alias, warnings))
    return result


password_option = click.option('--password', default=None,
                               help='Password for PKCS12/JCEKS key stores (if required).')
entry_password_option = click.option('--entry-password', multiple=True, metavar='ALIAS=SECRET',
                                     help='Password for a single key store entry (repeatable).')
format_option = click.option('--format', 'fmt', default=None,
                             help='Format of given input (PEM, DER, JCEKS, PKCS12; heuristic if missing).')


@click.group()
@click.version_option(__version__, prog_name='certscope')
@click.option('--config', '-c', 'config_path', default=None, help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.pass_context
def cli(ctx, config_path, verbose):
    """A command line certificate examination utility."""
    setup_logging(verbose)
    try:
        ctx.obj = load_config(config_path)
    except CertscopeError as e:
        fail(str(e))


@cli.command()
@click.argument('files', nargs=-1, type=click.Path(exists=True, dir_okay=False))
@format_option
@click.option('--pem', 'as_pem', is_flag=True, help='Write output as PEM blocks instead of human-readable format.')
@click.option('--json', 'as_json', is_flag=True, help='Write output as machine-readable JSON format.')
@password_option
@entry_password_option
@click.pass_obj
def dump(settings, files, fmt, as_pem, as_json, password, entry_password):
    """Display information about certificates from files or stdin."""
    settings = settings.override(format=fmt)
    resolver = build_resolver(password, entry_password)
    certs, aliases = [], []
    try:
        loader = CertificateLoader(settings.format, resolver)
        for block in loader.iter_blocks(_stdin_or(files)):
            if as_pem:
                click.echo(block.to_pem(), nl=False)
                continue
            for cert in block.certificates():
                certs.append(cert)
                aliases.append(block.alias)
    except (CertscopeError, OSError) as e:
        fail(f"error reading certificates: {e}")

    if as_pem:
        return
    if as_json:
        click.echo(to_json({'certificates': _certificate_dicts(settings, certs, aliases)}))
    else:
        click.echo(display_certificates(certs, aliases, color=_use_color(),
                                        expiry_warning_days=settings.expiry_warning_days,
                                        min_rsa_bits=settings.min_rsa_bits))


@cli.command()
@click.argument('file', required=False, type=click.Path(exists=True, dir_okay=False))
@click.option('--name', required=True, help='Server name to verify certificate against.')
@click.option('--ca', type=click.Path(exists=True, dir_okay=False),
              help='Path to CA bundle (system default if unspecified).')
@format_option
@click.option('--json', 'as_json', is_flag=True, help='Write output as machine-readable JSON format.')
@password_option
@entry_password_option
@click.pass_obj
def verify(settings, file, name, ca, fmt, as_json, password, entry_password):
    """Verify a certificate chain from a file or stdin against a name."""
    settings = settings.override(format=fmt)
    resolver = build_resolver(password, entry_password)
    try:
        loader = CertificateLoader(settings.format, resolver)
        certs = loader.load_certificates(_stdin_or([file] if file else []))
        verifier = _verifier(settings, ca)
    except (CertscopeError, OSError) as e:
        fail(f"error reading certificates: {e}")

    result = verifier.verify(certs, name)
    if as_json:
        click.echo(to_json(verify_result_to_dict(result)))
    else:
        click.echo(display_verify_result(result, color=_use_color()))
    if result.error:
        sys.exit(1)


@cli.command()
@click.argument('address', metavar='SERVER[:PORT]')
@click.option('--name', default=None, help='Override the server name used for Server Name Indication (SNI).')
@click.option('--ca', type=click.Path(exists=True, dir_okay=False),
              help='Path to CA bundle (system default if unspecified).')
@click.option('--pem', 'as_pem', is_flag=True, help='Write output as PEM blocks instead of human-readable format.')
@click.option('--json', 'as_json', is_flag=True, help='Write output as machine-readable JSON format.')
@click.option('--timeout', type=float, default=None, help='Connection timeout in seconds')
@click.pass_obj
def connect(settings, address, name, ca, as_pem, as_json, timeout):
    """Connect to a server and print its certificate(s)."""
    settings = settings.override(timeout=timeout)
    try:
        certs = fetch_peer_chain(address, name, settings.timeout)
    except CertscopeError as e:
        fail(str(e))

    if as_pem:
        for cert in certs:
            click.echo(cert.to_pem(), nl=False)
        return

    try:
        verifier = _verifier(settings, ca)
    except (CertscopeError, OSError) as e:
        fail(f"error reading CA bundle: {e}")
    hostname = name or parse_address(address)[0]
    result = verifier.verify(certs, hostname)

    if as_json:
        click.echo(to_json({
            'certificates': _certificate_dicts(settings, certs),
            'verify_result': verify_result_to_dict(result),
        }))
    else:
        color = _use_color()
        click.echo(display_certificates(certs, color=color,
                                        expiry_warning_days=settings.expiry_warning_days,
                                        min_rsa_bits=settings.min_rsa_bits))
        click.echo()
        click.echo(display_verify_result(result, color=color))
    if result.error:
        sys.exit(1)


def main():
    init()
    try:
        cli(prog_name='certscope')
    except KeyboardInterrupt:
        fail("interrupted by user")


if __name__ == '__main__':
    main()
