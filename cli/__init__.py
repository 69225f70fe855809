"""Interactive command shell for the neuron playground."""
