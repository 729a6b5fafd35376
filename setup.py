"""Install the HWSC user service package."""

from setuptools import setup, find_packages

setup(
    name='hwsc-user-svc',
    version='0.1.0',
    packages=find_packages(exclude=['*test*']),
    package_data={'usersvc': ['templates/*.html']},
    py_modules=['wsgi'],
    install_requires=[
        "sqlalchemy>=1.4",
        "python-dateutil",
        "pytz",
        "pyjwt>=2",
        "flask",
        "jinja2",
        "bcrypt",
        "python-json-logger>=3.1",
    ],
    extras_require={
        'mysql': ["mysqlclient"],
        'test': ["pytest"],
    },
    zip_safe=False
)
