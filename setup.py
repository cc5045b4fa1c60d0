from setuptools import setup
setup(name="tpm_attest",
      version="1.0",
      description="Replay TCG event logs into expected PCR values and translate PCI hardware IDs",
      license="MIT",
      python_requires=">=3.10",
      packages=["tpm_attest"],
      install_requires=["PyYAML"],
      entry_points={
          "console_scripts": [
              "tpm_attest = tpm_attest.cli:main",
          ],
      })
