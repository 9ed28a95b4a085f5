"""REST API for the RT/RW administration backend."""
