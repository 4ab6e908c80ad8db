from setuptools import setup


setup(
    name="invoice-genie",
    version="0.1.0",
    description="Local invoicing helper that turns pasted spreadsheet rows into customer records and orders",
    packages=["invoice_genie"],
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
        "requests",
    ],
    entry_points={
        "console_scripts": [
            "invoice-genie=invoice_genie.cli:main",
        ]
    },
)
