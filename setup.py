import setuptools

setuptools.setup(
    name='chainkit',
    version='0.1.0',
    author='Matt Graham',
    description=(
        'Harness for running iterative stochastic samplers over one or many chains'
    ),
    long_description=(
        'Chainkit is a Python package providing a generic harness for running '
        'iterative stochastic sampling procedures such as Markov chain Monte '
        'Carlo methods. It drives user-supplied step functions for a fixed '
        'number of iterations or until a stopping criterion is met, and samples '
        'ensembles of independent chains serially or in parallel over threads '
        'or processes with reproducible per-chain seeding.'
    ),
    packages=['chainkit'],
    package_dir={'': 'src'},
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Topic :: Scientific/Engineering',
        'Intended Audience :: Science/Research',
        'Intended Audience :: Developers'
    ],
    keywords='inference sampling MCMC ensemble parallel',
    license='MIT',
    install_requires=[
        'numpy>=1.17',
        'multiprocess>=0.70',
        'threadpoolctl>=3.0',
    ],
    python_requires='>=3.10',
    extras_require={
        'notebook': ['ipython>=7.0'],
        'test': ['pytest>=7.0'],
    }
)
