from setuptools import setup, find_packages


setup(
    name='torch_rom',
    version='0.1.0',
    packages=find_packages(include=['torch_rom', 'torch_rom.*']),
    install_requires=[
        'torch>=2.0.0',
        'numpy',
        'scipy',
    ],
    extras_require={
        'test':['pytest'],
    }
)
