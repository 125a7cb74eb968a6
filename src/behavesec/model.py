import numpy as np
import torch
import torch.nn as nn

# Narrowest widths that still give a 12-dimension behavior vector room to compress
MIN_ENCODER_WIDTH = 16
MIN_HIDDEN_WIDTH = 8
MIN_BOTTLENECK = 4


def layer_widths(input_dim):
    """Encoder widths (outer, inner, bottleneck) for a feature vector of `input_dim`."""
    return (
        max(int(input_dim * 0.8), MIN_ENCODER_WIDTH),
        max(int(input_dim * 0.6), MIN_HIDDEN_WIDTH),
        max(int(input_dim * 0.4), MIN_BOTTLENECK),
    )


def _block(in_features, out_features, dropout=None):
    layers = [nn.Linear(in_features, out_features), nn.BatchNorm1d(out_features), nn.LeakyReLU(0.1)]
    if dropout:
        layers.append(nn.Dropout(dropout))
    return layers


class BehaviorAutoencoder(nn.Module):
    """
    Learns to reproduce one user's normalized behavior vectors. Vectors from
    someone else reconstruct poorly, which is what the scorer measures.
    """

    def __init__(self, input_dim):
        super(BehaviorAutoencoder, self).__init__()
        self.input_dim = input_dim
        outer, inner, bottleneck = layer_widths(input_dim)

        # Dropout only on the way in; the decoder sees the full code
        self.encoder = nn.Sequential(
            *_block(input_dim, outer, dropout=0.2),
            *_block(outer, inner, dropout=0.2),
            nn.Linear(inner, bottleneck),
            nn.LeakyReLU(0.1),
        )
        self.decoder = nn.Sequential(
            *_block(bottleneck, inner),
            *_block(inner, outer),
            nn.Linear(outer, input_dim),
        )

    def forward(self, x):
        return self.decoder(self.encoder(x))


def reconstruction_errors(model, X):
    """
    Mean squared reconstruction error per row of an already normalized matrix.
    """
    X = np.atleast_2d(np.asarray(X, dtype=np.float32))
    model.eval()  # BatchNorm/Dropout must be in inference mode
    with torch.no_grad():
        reconstructed = model(torch.from_numpy(X)).numpy()
    return np.mean(np.power(X - reconstructed, 2), axis=1).astype(np.float64)
