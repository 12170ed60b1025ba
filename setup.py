"""Setup script for codeloop_agent package."""

from setuptools import setup, find_namespace_packages

setup(
    name="codeloop-agent",
    version="0.1.0",
    description="An autonomous coding agent with streaming model clients, tools and approval policies",
    packages=find_namespace_packages(include=["codeloop_agent", "codeloop_agent.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pyyaml>=6.0",
        "httpx>=0.25.0",
        "openai>=1.0",
        "tiktoken>=0.5",
    ],
    extras_require={
        "anthropic": ["anthropic>=0.25"],
        "web": [
            "markdownify>=0.11",
            "beautifulsoup4>=4.12",
        ],
        "test": ["pytest>=7.0"],
        "all": [
            "anthropic>=0.25",
            "markdownify>=0.11",
            "beautifulsoup4>=4.12",
        ],
    },
    entry_points={
        "console_scripts": [
            "codeloop-agent=codeloop_agent.main:main",
        ],
    },
    package_data={
        "codeloop_agent.config": ["default_config.yaml"],
    },
)
