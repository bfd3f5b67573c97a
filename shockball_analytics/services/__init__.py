"""
Services for the Shockball analytics sync layer.

- shockball: upstream API client
- energy: energy time-series extraction and penalty formulas
- sync: orchestrator and persistence gateway
"""
