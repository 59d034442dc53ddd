# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from pathlib import Path
import os
import re
import shlex

from jinja2 import Environment, FileSystemLoader, StrictUndefined

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"


def expand_env_vars(value: str) -> str:
    return re.sub(r"\$\{([^}^{]+)\}", lambda m: os.getenv(m.group(1), m.group(0)), value)


class TemplateRenderer:
    def __init__(self, templates_dir: Path = TEMPLATES_DIR):
        # StrictUndefined: a missing variable must fail rendering, not produce an empty line
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=False,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )
        self.env.filters["shell_quote"] = shlex.quote

    def render(self, template_name: str, context: dict) -> str:
        expanded = {k: expand_env_vars(v) if isinstance(v, str) else v for k, v in context.items()}
        tmpl = self.env.get_template(template_name)
        return tmpl.render(**expanded)
