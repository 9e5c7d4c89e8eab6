# File location: jax-dcgraph/src/dcgraph/config.py

"""
Fixed build-time constants for the DCGAN graphs.
"""

# Latent noise dimensionality
NOISE_DIM = 100

# Square image side length and channel count (MNIST-like)
IMAGE_SIZE = 28
NUM_CHANNELS = 1

# Generator projects noise onto a (IMAGE_SIZE/4, IMAGE_SIZE/4, 256) map
GENERATOR_BASE_DEPTH = 256
UNITS = (IMAGE_SIZE // 4) * (IMAGE_SIZE // 4) * GENERATOR_BASE_DEPTH

# Batch normalization: moving <- moving - (moving - batch) * (1 - MOMENTUM)
MOMENTUM = 0.99
BATCH_NORM_EPSILON = 0.001

LEAKY_RELU_ALPHA = 0.3
DROPOUT_RATE = 0.3

# Generator dense weights start from normal(0, 1) * this
DENSE_INIT_STDDEV = 0.01

MODEL_CONFIG = {
    'noise_dim': NOISE_DIM,
    'image_size': IMAGE_SIZE,
    'num_channels': NUM_CHANNELS,
    'units': UNITS,
    'momentum': MOMENTUM,
    'batch_norm_epsilon': BATCH_NORM_EPSILON,
    'leaky_relu_alpha': LEAKY_RELU_ALPHA,
    'dropout_rate': DROPOUT_RATE,
    'dense_init_stddev': DENSE_INIT_STDDEV,
}
