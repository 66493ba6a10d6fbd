from setuptools import setup, find_packages

setup(
    name="ciderdeck_core",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    install_requires=[
        "requests>=2.31.0",
        "python-dotenv>=1.0.0",
        "python-socketio[asyncio-client]>=5.8.0",
        "Pillow>=10.1.0",
    ],
    extras_require={
        "test": ["pytest>=7.4"],
    },
    entry_points={
        "console_scripts": ["ciderdeck=console_ui.app:main"],
    },
    python_requires=">=3.10",
)
