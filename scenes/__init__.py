"""scenes — pygame screens pushed onto the App's scene stack."""
