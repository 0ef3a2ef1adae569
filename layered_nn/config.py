"""
config.py
~~~~~~~~~

Runtime configuration read from environment variables.
"""

import os

# Seed of the process-wide generator used for weight initialization
RANDOM_SEED = int(os.getenv('LAYERED_NN_SEED', '42'))

DEFAULT_LEARNING_RATE = float(os.getenv('LAYERED_NN_LEARNING_RATE', '0.1'))

# Slope of leaky ReLU for negative inputs
LEAKY_RELU_ALPHA = float(os.getenv('LAYERED_NN_LEAKY_ALPHA', '0.001'))

MODEL_DIR = os.getenv('LAYERED_NN_MODEL_DIR', 'models')
