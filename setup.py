from setuptools import setup, find_packages

setup(
    name="cellarbook",
    version="0.1.0",
    description="Cellarbook - a personal wine cellar catalog with drink windows, search and an AI sommelier.",
    author="",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "pandas>=2.0.0",
        "pydantic>=2.5.0",
        "streamlit>=1.40.0",
        "plotly>=5.18.0",
        "supabase>=2.3.0",
        "psycopg[binary]>=3.1.0",
        "openai>=1.12.0",
        "tenacity>=8.2.0",
        "python-dotenv>=1.0.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
        ],
    },
)
