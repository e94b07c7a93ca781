"""
MkDocs plugin that publishes a Go test report page.

Hooks into MkDocs' build lifecycle to scan the configured Go module for
tests and sub-tests, merge the JUnit results of a previous ``go test`` run,
and render the report as a generated Markdown page added to the nav.
"""

from __future__ import annotations

import logging
import os

from mkdocs.config import config_options
from mkdocs.config.base import Config as MkDocsConfig
from mkdocs.plugins import BasePlugin
from mkdocs.structure.files import File

from .junit import parse_junit_results
from .parser import parse_test_suites
from .renderer import render_report

log = logging.getLogger("mkdocs.plugins.gotestdoc")


class GoTestDocConfig(MkDocsConfig):
    source_root = config_options.Type(str, default=".")
    junit = config_options.Type(str, default="")
    output = config_options.Type(str, default="tests.md")
    nav_title = config_options.Type(str, default="Test Report")
    report_title = config_options.Type(str, default="Test Documentation Report")
    fail_snippet = config_options.Type(int, default=100)
    build_tags = config_options.Type(list, default=[])


def _resolve(config_dir, path):
    if not path or os.path.isabs(path):
        return path
    return os.path.normpath(os.path.join(config_dir, path))


class GoTestDocPlugin(BasePlugin[GoTestDocConfig]):

    def __init__(self):
        super().__init__()
        self._suites = []
        self._results = {}
        self._tmpfiles = []

    def _load(self, config_dir):
        self._suites = []
        self._results = {}

        root = _resolve(config_dir, self.config["source_root"]) or config_dir
        try:
            self._suites = parse_test_suites(root, self.config["build_tags"])
        except RuntimeError as exc:
            log.error("gotestdoc: %s", exc)

        junit = _resolve(config_dir, self.config["junit"])
        if not junit:
            log.info("gotestdoc: no junit report configured, all tests shown as not run")
            return
        try:
            self._results = parse_junit_results(junit)
        except (RuntimeError, OSError) as exc:
            log.warning("gotestdoc: reading junit: %s", exc)
        else:
            log.info("gotestdoc: %d results from %s", len(self._results), junit)

    def _inject_nav(self, config):
        title = self.config["nav_title"]
        entry = {title: self.config["output"]}
        nav = config.get("nav")
        if nav is None:
            # MkDocs builds the nav from the docs dir, which includes our page
            return
        for i, item in enumerate(nav):
            if isinstance(item, dict) and title in item:
                nav[i] = entry
                return
        nav.append(entry)

    def render(self):
        return render_report(
            self._suites,
            self._results,
            fail_snippet=self.config["fail_snippet"],
            title=self.config["report_title"],
        )

    # ── MkDocs lifecycle hooks ──

    def on_config(self, config, **kwargs):
        config_dir = os.path.dirname(config.get("config_file_path", "")) or os.getcwd()
        self._tmpfiles.clear()
        self._load(config_dir)
        self._inject_nav(config)
        return config

    def on_files(self, files, *, config, **kwargs):
        uri = self.config["output"]
        try:
            f = File.generated(config, uri, content="")
        except (AttributeError, TypeError):
            f = File(
                uri,
                config["docs_dir"],
                config["site_dir"],
                config.get("use_directory_urls", True),
            )
            dest = os.path.join(config["docs_dir"], uri)
            os.makedirs(os.path.dirname(dest), exist_ok=True)
            open(dest, "w").close()
            self._tmpfiles.append(dest)
        f.edit_uri = None
        files.append(f)
        return files

    def on_page_markdown(self, markdown, *, page, config, files, **kwargs):
        src_uri = getattr(page.file, "src_uri", None) or page.file.src_path
        if src_uri != self.config["output"]:
            return markdown
        return self.render()

    def on_post_build(self, *, config, **kwargs):
        docs_dir = config["docs_dir"]
        for p in self._tmpfiles:
            try:
                os.remove(p)
            except OSError:
                pass
            d = os.path.dirname(p)
            while d != docs_dir:
                try:
                    os.rmdir(d)
                except OSError:
                    break
                d = os.path.dirname(d)
