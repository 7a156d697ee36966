"""
Snap2Motion Setup Script
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_path = Path(__file__).parent / "README.md"
long_description = readme_path.read_text(encoding='utf-8') if readme_path.exists() else ""

# Read requirements
requirements_path = Path(__file__).parent / "requirements.txt"
requirements = []
if requirements_path.exists():
    with open(requirements_path, 'r') as f:
        requirements = [
            line.strip()
            for line in f
            if line.strip() and not line.startswith('#')
        ]

setup(
    name="snap2motion",
    version="0.1.0",
    author="Snap2Motion Project",
    description="Turn one image and a prompt into a short video via Hugging Face Spaces, Replicate or a local renderer",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=['snap2motion', 'snap2motion.*']),
    py_modules=['generate', 'run_ui'],
    include_package_data=True,
    package_data={
        'snap2motion': [
            'configs/*.yaml',
        ],
    },
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={
        'dev': [
            'pytest>=7.0.0',
            'pytest-cov>=4.0.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'snap2motion=generate:main',
            'snap2motion-ui=run_ui:main',
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Video",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],
    keywords="image to video, ai, gradio, replicate, huggingface, spaces",
)
