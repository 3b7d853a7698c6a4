"""Tests for custom image recipe rendering."""

from __future__ import annotations

import logging
from pathlib import Path

from airflow_deploykit.config import ImageConfig
from airflow_deploykit.image import (
    render_dockerfile,
    render_requirements,
    requirement_lines,
    write_build_context,
)


class TestRequirements:
    """Tests for requirements.txt rendering."""

    def test_default_recipe_pins_airflow_first(self):
        lines = requirement_lines(ImageConfig())

        assert lines == [
            "apache-airflow==2.7.3",
            "apache-airflow-providers-apache-spark==2.1.3",
            "numpy==1.24.4",
            "pandas==2.0.3",
            "apache-airflow-providers-trino==5.4.0",
        ]

    def test_pin_can_be_disabled(self):
        lines = requirement_lines(ImageConfig(pin_airflow=False))

        assert not any(line.startswith("apache-airflow==") for line in lines)

    def test_declared_airflow_is_not_pinned_twice(self):
        image = ImageConfig(python_packages=["apache-airflow==2.7.3", "numpy==1.24.4"])

        assert requirement_lines(image) == ["apache-airflow==2.7.3", "numpy==1.24.4"]

    def test_unversioned_base_warns(self, caplog):
        image = ImageConfig(base_image="apache/airflow:latest", python_packages=["numpy"])

        with caplog.at_level(logging.WARNING):
            lines = requirement_lines(image)

        assert lines == ["numpy"]
        assert "will not be pinned" in caplog.text

    def test_rendered_file_ends_with_newline(self):
        content = render_requirements(ImageConfig(pin_airflow=False, python_packages=["rich"]))

        assert content == "rich\n"


class TestDockerfile:
    """Tests for Dockerfile rendering."""

    def test_default_recipe(self):
        dockerfile = render_dockerfile(ImageConfig())

        assert "FROM apache/airflow:2.7.3" in dockerfile
        assert 'LABEL maintainer="Airflow-Custom-Image"' in dockerfile
        assert "openjdk-11-jre-headless" in dockerfile
        assert "rm -rf /var/lib/apt/lists/*" in dockerfile
        assert "RUN pip install --no-cache-dir -r requirements.txt" in dockerfile
        assert "ENV JAVA_HOME=/usr/lib/jvm/java-11-openjdk-amd64" in dockerfile

    def test_os_packages_installed_as_root_then_drops_to_airflow(self):
        dockerfile = render_dockerfile(ImageConfig())

        root = dockerfile.index("USER root")
        apt = dockerfile.index("apt-get install")
        airflow = dockerfile.index("USER airflow")
        pip = dockerfile.index("pip install")
        assert root < apt < airflow < pip

    def test_no_os_packages_skips_root(self):
        dockerfile = render_dockerfile(ImageConfig(os_packages=[]))

        assert "USER root" not in dockerfile
        assert "apt-get" not in dockerfile
        assert "USER airflow" in dockerfile

    def test_env_values_with_spaces_are_quoted(self):
        dockerfile = render_dockerfile(ImageConfig(env={"GREETING": "hello world"}))

        assert 'ENV GREETING="hello world"' in dockerfile

    def test_env_values_are_not_expanded(self):
        dockerfile = render_dockerfile(ImageConfig(env={"PIP_INDEX_URL": "https://$TOKEN@pypi.example.com"}))

        assert 'ENV PIP_INDEX_URL="https://\\$TOKEN@pypi.example.com"' in dockerfile

    def test_no_env_block_without_env(self):
        dockerfile = render_dockerfile(ImageConfig(env={}))

        assert "ENV " not in dockerfile


class TestWriteBuildContext:
    """Tests for write_build_context."""

    def test_writes_both_files(self, tmp_path: Path):
        paths = write_build_context(ImageConfig(), tmp_path / "image")

        assert set(paths) == {"Dockerfile", "requirements.txt"}
        assert paths["Dockerfile"].read_text(encoding="utf-8").startswith("# Generated")
        assert "numpy==1.24.4" in paths["requirements.txt"].read_text(encoding="utf-8")
        assert list((tmp_path / "image").glob("*.tmp")) == []
