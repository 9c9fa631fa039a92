from setuptools import setup, find_namespace_packages

setup(
    name="lyrics-sync",
    version="0.1.0",
    description="Parse LRC, Enhanced LRC and TTML lyrics into one timed model and keep them in sync with a playback clock",
    long_description=open("README.md", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    python_requires=">=3.10",
    license="MIT",
    packages=find_namespace_packages(include=["lyrics_sync", "lyrics_sync.*"]),
    package_data={"lyrics_sync": ["py.typed"]},
    install_requires=[
        "typer",
    ],
    extras_require={
        "dev": [
            "pytest",
            "black",
            "ruff",
            "mypy",
        ]
    },
    entry_points={
        "console_scripts": [
            "lyrics-sync=lyrics_sync.cli:main",
        ]
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio",
        "Topic :: Text Processing",
    ],
    keywords="lyrics lrc ttml karaoke synchronized",
)
