from setuptools import setup, find_packages
from pathlib import Path

here = Path(__file__).parent
long_description = (here / "README.md").read_text(encoding="utf-8")

setup(
    name="config-audit",
    version="0.1.0",
    description="Rule-driven audit of project tooling configuration (Biome, Vitest, Next.js, Docker, Go)",
    long_description=long_description,
    long_description_content_type="text/markdown",

    packages=find_packages(include=["config_audit", "config_audit.*"]),
    include_package_data=True,
    package_data={
        "config_audit.rules": ["rule_configs/*.yaml"],
        "config_audit.config": ["*.yaml"],
        "config_audit.reports": ["templates/*.j2"],
    },
    python_requires=">=3.10",

    install_requires=[
        "pyyaml>=6.0",
        "jsonschema>=4.0.0",
        "pydantic>=2.6.0",
        "jinja2>=3.1.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },

    entry_points={
        "console_scripts": [
            "config-audit=config_audit.main:main"
        ]
    },

    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Quality Assurance",
        "Topic :: Software Development :: Build Tools",
    ],

    keywords="configuration audit lint biome vitest nextjs docker go rules",
    license="MIT",
)
