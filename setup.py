from setuptools import find_packages, setup

PROJECT_URLS = {
    'Source Code': 'https://github.com/korral-dev/korral',
}

setup(
    name='korral',
    version='0.1.0',

    url=PROJECT_URLS['Source Code'],
    project_urls=PROJECT_URLS,
    description='Permission-aware access layer for Kubernetes-style resource stores',
    keywords=['kubernetes', 'rbac', 'access', 'python', 'k8s', 'asyncio'],
    license='MIT',
    classifiers = [
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3 :: Only',
        'Programming Language :: Python :: Implementation :: CPython',
        'Framework :: AsyncIO',
        'Topic :: Software Development :: Libraries',
    ],

    zip_safe=True,
    packages=find_packages(exclude=['tests', 'tests.*']),
    include_package_data=True,

    python_requires='>=3.8',
    install_requires=[
        'typing_extensions',            # 0.20 MB
        'python-json-logger>=3.1',      # 0.05 MB
        'iso8601',                      # 0.07 MB
        'aiohttp',                      # 7.80 MB
        'aiohttp>=3.9.0; python_version>="3.12"',
        'pyyaml',                       # 0.90 MB
    ],
    extras_require={
        'dev': [
            'pytest',
            'pytest-asyncio>=0.21',
            'pytest-mock',
            'aresponses',
            'async-timeout',
        ],
    },
    package_data={"korral": ["py.typed"]},
)
