"""Install the authstate package."""

from setuptools import setup, find_packages

setup(
    name='authstate',
    version='0.1.0',
    packages=find_packages(exclude=['*test*']),
    python_requires='>=3.10',
    install_requires=[
        "sqlalchemy>=1.4",
        "python-dateutil",
        "pyjwt>=2",
        "pytz",
        "python-json-logger"
    ],
    extras_require={
        'test': [
            "pytest",
            "pytest-asyncio",
            "mimesis",
            "hypothesis"
        ]
    },
    zip_safe=False
)
