from sampleapp.main import main

main()
