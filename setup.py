from setuptools import setup

with open('README.md') as f:
    readme = f.read()

setup(
    name='acmecore',
    version='0.1.0',
    description='ACME (RFC 8555) client core: JWS signing, nonce handling and the issuance flow',
    long_description=readme,
    long_description_content_type='text/markdown',
    packages=['acmecore'],
    install_requires=[
        'appdirs',
        'cryptography>=42',
        'requests',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    classifiers=[
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: Implementation :: CPython',
        'Topic :: Internet :: WWW/HTTP',
        'Topic :: Security :: Cryptography',
    ],
    python_requires='>=3.8',
)
