"""Validate command for options and templates."""

from pathlib import Path
from typing import Optional

import typer

from files_announce.cli.utils import (
    display,
    handle_errors,
    load_options,
    options_location,
    options_path_option,
)
from files_announce.services.config_manager import OptionsManager
from files_announce.services.template_service import TemplateLoader
from files_announce.utils.exceptions import TemplateLoadError


@handle_errors
def validate_command(options_path: Optional[Path] = options_path_option()):
    """Check that options parse and all five templates load."""
    options = load_options(options_path)
    base_dir = OptionsManager(options_location(options_path)).base_dir

    try:
        templates = TemplateLoader([base_dir]).load(options)
    except TemplateLoadError as e:
        display(f"Validation failed: {e}", "error")
        raise typer.Exit(code=1)

    typer.echo(f"Area pattern: {options.area_tags_regex}")
    typer.echo(f"Max files per area: {options.max_files_per_area}")
    typer.echo(f"Template encoding: {options.template_encoding}")
    typer.echo(f"Description indent: {templates.desc_indent}")
    display("Options and templates are valid!", "success")
