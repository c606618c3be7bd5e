"""
example.py - Simple Example for gccluster

This is a basic example script demonstrating the workflow for setting up and
running a clustering simulation: random deployment, synthetic traffic, a
Cluster Head failure, and plots of the resulting cluster structure.
"""

import gccluster as gc

#------------------------------------------------------------------------------#
#    Configuration                                                             #
#------------------------------------------------------------------------------#

cfg = gc.ClusterConfig(
    helloInterval=1.0,                         # advertise every second
    helloJitter=0.2,                           # spread advertisements
    neighborTimeout=3.5,                       # evict silent neighbors
    maintenanceInterval=2.0,                   # prune + recolor + role cycle
    dataInterval=2.0,                          # synthetic traffic period
    dataJitter=0.5,                            # spread traffic generation
)

#------------------------------------------------------------------------------#
#    Set Up Simulation                                                         #
#------------------------------------------------------------------------------#

sim = gc.simulator.Simulator(                  # create a simulation object
    name='Example',
    config=cfg,
    seed=7,                                    # reproducible run
    MAX_JITTER=0.0005,                         # radio delivery jitter (s)
)

#------------------------------------------------------------------------------#
#    Nodes                                                                     #
#------------------------------------------------------------------------------#

sim.deployRandom(                              # scatter nodes in a square
    n=20,                                      # number of nodes
    area=300.0,                                # side length of square (m)
    txRange=100.0,                             # radio range (m)
)

#------------------------------------------------------------------------------#
#    Failure Injection                                                         #
#------------------------------------------------------------------------------#

sim.killNode(1, at=40.0)                       # node 1 goes silent
sim.reviveNode(1, at=80.0)                     # and comes back

#------------------------------------------------------------------------------#
#    Run Simulation                                                            #
#------------------------------------------------------------------------------#

sim.run(120.0, sampleInterval=1.0)             # start the simulation
sim.stop()                                     # node teardown reports
sim.plotTopology(save=True)                    # final cluster structure
sim.plotColorHistory(fileName=f'{sim.outDir}/Example_colors.png')
