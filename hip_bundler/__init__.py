"""HIP document bundler: FHIR document export of EMR records."""
