# Copyright 2026 Firefly Software Solutions Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""``csrfp`` command line — token generation and settings inspection."""

from __future__ import annotations

from pathlib import Path

import click
from rich.markup import escape
from rich.table import Table

from csrfp.cli.console import console
from csrfp.core.config import Config
from csrfp.kernel.exceptions import EntropyUnavailable
from csrfp.security.settings import DEFAULT_TOKEN_LENGTH, CsrfpSettings
from csrfp.security.tokens import TokenGenerator


@click.group()
@click.version_option(package_name="csrfprotector")
def cli() -> None:
    """CSRF Protector command line."""


@cli.command("token")
@click.option("--length", "-l", type=click.IntRange(min=1), default=DEFAULT_TOKEN_LENGTH, show_default=True)
@click.option("--count", "-n", type=click.IntRange(min=1), default=1, show_default=True)
def token_command(length: int, count: int) -> None:
    """Print freshly generated tokens, one per line."""
    generator = TokenGenerator()
    try:
        for _ in range(count):
            click.echo(generator.generate(length))
    except EntropyUnavailable as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command("config")
@click.argument("path", type=click.Path(path_type=Path), required=False)
@click.option("--profile", "-p", "profiles", multiple=True, help="Profile overlay to merge.")
def config_command(path: Path | None, profiles: tuple[str, ...]) -> None:
    """Show the effective settings loaded from PATH (YAML or TOML)."""
    if path is not None and not path.is_file():
        raise click.ClickException(f"config file not found: {path}")
    config = Config.from_file(path, list(profiles)) if path is not None else Config()
    settings = CsrfpSettings.from_config(config)

    table = Table(title="CSRF Protector settings", show_header=False, border_style="dim")
    table.add_column("Key", style="info")
    table.add_column("Value")
    for name in CsrfpSettings.__dataclass_fields__:
        value = getattr(settings, name)
        if name == "action":
            value = value.value
        elif name == "verify_get_for":
            value = ", ".join(p.pattern for p in value) or "-"
        elif name == "exclude_patterns":
            value = ", ".join(value) or "-"
        table.add_row(name, escape(str(value)))
    console.print(table)
    if config.loaded_sources:
        console.print(f"[dim]sources: {', '.join(config.loaded_sources)}[/dim]")
