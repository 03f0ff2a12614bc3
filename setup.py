from setuptools import setup, find_packages

setup(
    name="garch-var",
    version="0.1.0",
    packages=find_packages(exclude=["tests"]),
    py_modules=["run_var_backtest"],
    install_requires=[
        "numpy",
        "pandas",
        "scipy",
        "arch>=5.0",
        "statsmodels",
        "tqdm",
        "psutil",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["garch-var=run_var_backtest:main"],
    },
    python_requires=">=3.8",
)
