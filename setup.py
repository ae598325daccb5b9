from setuptools import setup, find_packages

setup(
    name="shoutstream-player",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "click",
        "requests",
        "python-dotenv",
        "ffmpeg-python",
        "flask",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-mock",
        ],
    },
    entry_points={
        "console_scripts": [
            "shoutstream=shoutstream.cli:main",
        ],
    },
    description="Stream URL resolution and metadata normalization for Shoutcast/Icecast players",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
)
