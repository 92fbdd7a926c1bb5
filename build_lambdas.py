#!/usr/bin/env python3
"""Build Lambda deployment packages."""

import os
import shutil
import sys
import zipfile
from pathlib import Path

# boto3/botocore ship with the Lambda Python runtime and are not bundled.
BASE_PACKAGES = [
    "pydantic",
    "pydantic_core",
    "pydantic_settings",
    "dotenv",
    "python_dotenv",
    "typing_extensions",
    "typing_inspection",
    "annotated_types",
]

OPENAI_PACKAGES = [
    "openai",
    "httpx",
    "httpcore",
    "h11",
    "anyio",
    "sniffio",
    "distro",
    "jiter",
    "tqdm",
    "certifi",
    "idna",
]

PANDAS_PACKAGES = [
    "pandas",
    "numpy",
    "pytz",
    "python_dateutil",
    "dateutil",
    "tzdata",
    "six",
]

# Each function bundles only what its handler imports (through common/).
LAMBDA_PACKAGES = {
    "lambda_device_health": BASE_PACKAGES + OPENAI_PACKAGES,
    "lambda_analyze_alerts": BASE_PACKAGES + OPENAI_PACKAGES + PANDAS_PACKAGES,
    "lambda_confirm_alert": BASE_PACKAGES,
}


def copy_site_packages(packages, site_packages: Path, target: Path):
    """Copy the named packages and their .dist-info metadata into target."""
    for pkg in packages:
        pkg_path = site_packages / pkg
        if pkg_path.is_dir():
            shutil.copytree(pkg_path, target / pkg, dirs_exist_ok=True)
        elif pkg_path.exists():
            shutil.copy2(pkg_path, target / pkg)

        for dist_info in site_packages.glob(f"{pkg}*.dist-info"):
            shutil.copytree(dist_info, target / dist_info.name, dirs_exist_ok=True)

    if "numpy" in packages:
        numpy_libs = site_packages / "numpy.libs"
        if numpy_libs.exists():
            shutil.copytree(numpy_libs, target / "numpy.libs", dirs_exist_ok=True)


def build_lambda_package(lambda_name: str, site_packages_dir: str, output_dir: str):
    """Build a Lambda deployment package.

    Args:
        lambda_name: Name of the Lambda function (e.g., 'lambda_device_health').
        site_packages_dir: Directory containing installed Python packages.
        output_dir: Directory to write the ZIP file to.
    """
    print(f"Building {lambda_name}...")

    temp_dir = Path(output_dir) / f"{lambda_name}_temp"
    temp_dir.mkdir(parents=True, exist_ok=True)

    try:
        lambda_dir = Path(lambda_name)
        shutil.copy2(lambda_dir / "handler.py", temp_dir / "handler.py")

        common_dir = Path("common")
        if common_dir.exists():
            shutil.copytree(
                common_dir,
                temp_dir / "common",
                dirs_exist_ok=True,
                ignore=shutil.ignore_patterns("__pycache__"),
            )

        site_packages = Path(site_packages_dir)
        if site_packages.exists():
            copy_site_packages(LAMBDA_PACKAGES[lambda_name], site_packages, temp_dir)
        else:
            print(f"  ! {site_packages} not found, packaging code only")

        zip_path = Path(output_dir) / f"{lambda_name}.zip"
        with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as zipf:
            for root, dirs, files in os.walk(temp_dir):
                for file in files:
                    file_path = Path(root) / file
                    zipf.write(file_path, file_path.relative_to(temp_dir))

        print(f"✓ Built {zip_path}")

    finally:
        if temp_dir.exists():
            shutil.rmtree(temp_dir)


def main():
    """Build every Lambda package into dist/."""
    site_packages = sys.argv[1] if len(sys.argv) > 1 else "packages"
    output_dir = "dist"

    Path(output_dir).mkdir(parents=True, exist_ok=True)

    for lambda_name in LAMBDA_PACKAGES:
        build_lambda_package(lambda_name, site_packages, output_dir)

    print(f"\n✓ All Lambda packages built successfully in {output_dir}/")


if __name__ == "__main__":
    main()
