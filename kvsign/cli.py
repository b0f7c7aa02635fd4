"""kvsign CLI application with Typer."""

import logging
from pathlib import Path
from typing import Annotated, NoReturn

import typer

from kvsign import __version__
from kvsign.app.ports import SignatureOptions
from kvsign.bootstrap import bootstrap_application
from kvsign.config import get_settings, set_settings
from kvsign.errors import ArgumentError

app = typer.Typer(
    name="kvsign",
    help="Sign NuGet packages with certificates stored in Azure Key Vault",
    add_completion=True,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"kvsign version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)"),
    ] = None,
) -> None:
    """kvsign - remote-key package signing."""
    settings = get_settings()
    if log_level:
        settings.log_level = log_level.upper()
    set_settings(settings)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(levelname)s %(name)s: %(message)s",
    )


def _fail_config(message: str) -> NoReturn:
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=2)


def _resolve_outputs(packages: list[Path], output: Path | None) -> list[tuple[Path, Path]]:
    """Pair every package with its destination path."""
    if output is None:
        return [(package, package) for package in packages]

    if len(packages) > 1 or output.is_dir():
        output.mkdir(parents=True, exist_ok=True)
        return [(package, output / package.name) for package in packages]

    return [(packages[0], output)]


@app.command("sign")
def sign(
    packages: Annotated[
        list[Path],
        typer.Argument(help="Package file(s) to sign"),
    ],
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help=(
                "Output file, or directory when signing several packages. "
                "Without it packages are signed in place, which requires --force."
            ),
        ),
    ] = None,
    timestamp_url: Annotated[
        str | None,
        typer.Option("--timestamp-url", "-t", help="RFC 3161 timestamp authority URL"),
    ] = None,
    file_digest: Annotated[
        str | None,
        typer.Option("--file-digest", help="Signature hash algorithm (sha256, sha384, sha512)"),
    ] = None,
    timestamp_digest: Annotated[
        str | None,
        typer.Option("--timestamp-digest", help="Timestamp hash algorithm (sha256, sha384, sha512)"),
    ] = None,
    signature_type: Annotated[
        str,
        typer.Option("--signature-type", help="Signature type: author or repository"),
    ] = "author",
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing output, or the package when signing in place"),
    ] = False,
    v3_service_index_url: Annotated[
        str | None,
        typer.Option("--v3-service-index-url", help="Service index URL (repository signatures)"),
    ] = None,
    package_owners: Annotated[
        list[str] | None,
        typer.Option("--package-owner", help="Package owner (repository signatures, repeatable)"),
    ] = None,
    key_vault_url: Annotated[
        str | None,
        typer.Option("--key-vault-url", help="Key vault URL"),
    ] = None,
    certificate_name: Annotated[
        str | None,
        typer.Option("--key-vault-certificate", help="Name of the signing certificate in the vault"),
    ] = None,
    client_id: Annotated[
        str | None,
        typer.Option("--key-vault-client-id", help="Client id for the token exchange"),
    ] = None,
    client_secret: Annotated[
        str | None,
        typer.Option("--key-vault-client-secret", help="Client secret for the token exchange"),
    ] = None,
    access_token: Annotated[
        str | None,
        typer.Option("--key-vault-access-token", help="Pre-issued key vault access token"),
    ] = None,
) -> None:
    """Sign one or more packages with a key held in Azure Key Vault."""

    container = bootstrap_application()
    settings = container.settings

    resolved_timestamp_url = timestamp_url or settings.timestamp_url
    resolved_vault_url = key_vault_url or settings.key_vault_url
    resolved_certificate = certificate_name or settings.key_vault_certificate_name

    if not resolved_timestamp_url:
        _fail_config("A timestamp URL is required (--timestamp-url or KVSIGN_TIMESTAMP_URL).")
    if not resolved_vault_url:
        _fail_config("A key vault URL is required (--key-vault-url or KVSIGN_KEY_VAULT_URL).")
    if not resolved_certificate:
        _fail_config(
            "A certificate name is required (--key-vault-certificate or KVSIGN_KEY_VAULT_CERTIFICATE_NAME)."
        )

    try:
        options = SignatureOptions.create(
            signature_type,
            file_digest or settings.signature_hash_algorithm,
            timestamp_digest or settings.timestamp_hash_algorithm,
            v3_service_index_url=v3_service_index_url,
            package_owners=package_owners,
        )
    except ArgumentError as exc:
        _fail_config(str(exc))

    credentials = settings.get_credentials(
        access_token=access_token,
        client_id=client_id,
        client_secret=client_secret,
    )
    if not credentials.is_usable():
        _fail_config(
            "Key vault credentials are required: --key-vault-access-token, or "
            "--key-vault-client-id with --key-vault-client-secret."
        )

    resolved_packages = [package.expanduser().resolve() for package in packages]
    missing = [package for package in resolved_packages if not package.is_file()]
    if missing:
        for package in missing:
            typer.secho(f"Error: Package not found: {package}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    if output is None and not force:
        _fail_config("Signing in place replaces the package; pass --force or choose an --output.")

    pairs = _resolve_outputs(resolved_packages, output.expanduser() if output else None)

    results = container.signing_service.sign_many(
        pairs,
        timestamp_url=resolved_timestamp_url,
        signature_hash_algorithm=options.signature_hash_algorithm,
        timestamp_hash_algorithm=options.timestamp_hash_algorithm,
        signature_type=options.signature_type,
        overwrite=force,
        key_vault_url=resolved_vault_url,
        certificate_name=resolved_certificate,
        credentials=credentials,
        v3_service_index_url=options.v3_service_index_url,
        package_owners=options.package_owners,
    )

    failures = 0
    for result in results:
        if result.success:
            typer.secho(f"✅ Signed {result.package_path.name} -> {result.output_path}", fg=typer.colors.GREEN)
        else:
            failures += 1
            typer.secho(f"❌ Failed to sign {result.package_path.name}", fg=typer.colors.RED, err=True)

    if failures:
        raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover
    app()
