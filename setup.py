from setuptools import setup, find_packages

setup(
    name='kadmctl',
    version='0.1.0',
    packages=find_packages(exclude=['kadmctl.tests', 'kadmctl.tests.*']),
    include_package_data=True,
    package_data={
        'kadmctl.modules.kubeadm': ['templates/*.j2'],
    },
    install_requires=[
        'typer[all]',
        'fastapi',
        'uvicorn',
        'pydantic>=2',
        'PyYAML',
        'Jinja2',
        'paramiko',
        'python-dotenv',
    ],
    extras_require={
        'tests': [
            'pytest',
            'httpx',
        ],
    },
    entry_points={
        'console_scripts': [
            'kadmctl=kadmctl.cli:app'
        ]
    },
    author='Your Name',
    description='A CLI and API for kubeadm cluster lifecycle over SSH: init, join and remove masters and nodes',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
    python_requires='>=3.9',
)
