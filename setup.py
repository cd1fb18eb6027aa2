from setuptools import setup, find_packages

setup(
    name="seedbay-marketplace",
    version="0.1.0",
    packages=find_packages(include=["seedbay", "seedbay.*", "marketplace", "marketplace.*"]),
    include_package_data=True,
    install_requires=[
        "Django>=4.2",
        "djangorestframework>=3.14",
        "django-cors-headers>=4.0",
        "whitenoise>=6.0",
        "python-dotenv>=1.0",
        "stripe>=8.0",
        "requests>=2.31",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-django>=4.5",
        ],
    },
    author="SeedBay",
    author_email="dev@seedbay.io",
    description="SeedBay marketplace: order lifecycle, Stripe reconciliation and gated downloads for Django.",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    url="https://seedbay.io",
    license="MIT",
    classifiers=[
        "Framework :: Django",
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
        "License :: OSI Approved :: MIT License"
    ],
    python_requires='>=3.10',
)
